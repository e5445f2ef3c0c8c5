from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional
import logging

from app.core.errors import StoreError

logger = logging.getLogger(__name__)

STARTED = "started"
COMPLETED = "completed"
MAX_MASTERY = 100

CORRECT_POINTS = 5
WRONG_POINTS = -2

_CATEGORY_PREFIX = "curriculum-"


@dataclass
class MasteryRecord:
    user_id: str
    node_id: int
    status: str = STARTED            # started | completed
    mastery_level: int = 0           # 0..100; completed iff 100
    last_activity: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clamp(level: int) -> int:
    return max(0, min(MAX_MASTERY, level))


def apply_graded_event(
    record: Optional[MasteryRecord],
    user_id: str,
    node_id: int,
    points: int,
    now: Optional[str] = None,
) -> MasteryRecord:
    """
    Pure transition — no store access.

    absent    -> started, mastery = points
    started   -> mastery += points, clamped to 0..100; 100 -> completed
    completed -> unchanged (only last_activity moves)
    """
    now = now or _now_iso()
    if record is None:
        level = _clamp(points)
    elif record.status == COMPLETED:
        return MasteryRecord(user_id, node_id, COMPLETED, MAX_MASTERY, now)
    else:
        level = _clamp(record.mastery_level + points)
    status = COMPLETED if level == MAX_MASTERY else STARTED
    return MasteryRecord(user_id, node_id, status, level, now)


def points_for_answer(is_correct: bool) -> int:
    return CORRECT_POINTS if is_correct else WRONG_POINTS


def parse_curriculum_category(category: Optional[str]) -> Optional[int]:
    """'curriculum-279' -> 279. Anything else -> None."""
    if not category or not isinstance(category, str) or not category.startswith(_CATEGORY_PREFIX):
        return None
    raw = category[len(_CATEGORY_PREFIX):].split("-", 1)[0]
    return int(raw) if raw.isdigit() else None


class MasteryStore:
    def get(self, user_id: str, node_id: int) -> Optional[MasteryRecord]:
        raise NotImplementedError

    def upsert(self, record: MasteryRecord) -> MasteryRecord:
        raise NotImplementedError

    def list_user(self, user_id: str) -> list[MasteryRecord]:
        raise NotImplementedError

    def record_event(self, user_id: str, node_id: int, points: int) -> MasteryRecord:
        # read-modify-write; SqlMasteryStore overrides with a single statement
        current = self.get(user_id, node_id)
        return self.upsert(apply_graded_event(current, user_id, node_id, points))


class InMemoryMasteryStore(MasteryStore):
    def __init__(self):
        self._data = {}

    def _key(self, user_id: str, node_id: int):
        return f"{user_id}::{node_id}"

    def get(self, user_id: str, node_id: int) -> Optional[MasteryRecord]:
        return self._data.get(self._key(user_id, node_id))

    def upsert(self, record: MasteryRecord) -> MasteryRecord:
        self._data[self._key(record.user_id, record.node_id)] = record
        return record

    def list_user(self, user_id):
        prefix = f"{user_id}::"
        return [v for k, v in self._data.items() if k.startswith(prefix)]


def _from_row(row: dict) -> MasteryRecord:
    return MasteryRecord(
        user_id=row["user_uid"],
        node_id=int(row["curriculum_node_id"]),
        status=row.get("status") or STARTED,
        mastery_level=int(row.get("mastery_level") or 0),
        last_activity=row.get("last_activity"),
    )


class SupabaseMasteryStore(MasteryStore):
    def __init__(self, supabase_client):
        self.sb = supabase_client

    def get(self, user_id: str, node_id: int) -> Optional[MasteryRecord]:
        r = (
            self.sb.table("user_curriculum_progress")
            .select("*")
            .eq("user_uid", user_id)
            .eq("curriculum_node_id", node_id)
            .maybe_single()
            .execute()
        )
        data = getattr(r, "data", None)
        if not data:
            return None
        return _from_row(data)

    def upsert(self, record: MasteryRecord) -> MasteryRecord:
        payload = {
            "user_uid": record.user_id,
            "curriculum_node_id": record.node_id,
            "status": record.status,
            "mastery_level": record.mastery_level,
            "last_activity": record.last_activity,
        }
        (
            self.sb.table("user_curriculum_progress")
            .upsert(payload, on_conflict="user_uid,curriculum_node_id")
            .execute()
        )
        return record

    def record_event(self, user_id: str, node_id: int, points: int) -> MasteryRecord:
        try:
            return super().record_event(user_id, node_id, points)
        except Exception as exc:
            # postgrest.APIError, httpx errors
            raise StoreError(f"supabase mastery update failed: {exc}") from exc

    def list_user(self, user_id):
        r = self.sb.table("user_curriculum_progress").select("*").eq("user_uid", user_id).execute()
        rows = getattr(r, "data", None) or []
        return [_from_row(d) for d in rows]


# Clamp and status are computed from the pre-update row inside one statement,
# so concurrent events for the same (user, node) cannot lose an update.
_RECORD_EVENT_SQL = """
    INSERT INTO user_curriculum_progress (user_uid, curriculum_node_id, status, mastery_level, last_activity)
    VALUES (?, ?, ?, ?, ?)
    ON CONFLICT (user_uid, curriculum_node_id) DO UPDATE SET
        mastery_level = CASE
            WHEN status = 'completed' THEN 100
            ELSE MAX(0, MIN(100, mastery_level + ?))
        END,
        status = CASE
            WHEN status = 'completed' OR MAX(0, MIN(100, mastery_level + ?)) = 100 THEN 'completed'
            ELSE 'started'
        END,
        last_activity = excluded.last_activity
"""

_SELECT_SQL = (
    "SELECT user_uid, curriculum_node_id, status, mastery_level, last_activity "
    "FROM user_curriculum_progress WHERE user_uid = ? AND curriculum_node_id = ?"
)


class SqlMasteryStore(MasteryStore):
    def __init__(self, store):
        self.store = store

    def get(self, user_id: str, node_id: int) -> Optional[MasteryRecord]:
        row = self.store.query_one(_SELECT_SQL, [user_id, node_id])
        return _from_row(row) if row else None

    def upsert(self, record: MasteryRecord) -> MasteryRecord:
        self.store.execute(
            "INSERT OR REPLACE INTO user_curriculum_progress "
            "(user_uid, curriculum_node_id, status, mastery_level, last_activity) VALUES (?, ?, ?, ?, ?)",
            [record.user_id, record.node_id, record.status, record.mastery_level, record.last_activity],
        )
        return record

    def list_user(self, user_id):
        rows = self.store.query(
            "SELECT user_uid, curriculum_node_id, status, mastery_level, last_activity "
            "FROM user_curriculum_progress WHERE user_uid = ? ORDER BY curriculum_node_id",
            [user_id],
        )
        return [_from_row(r) for r in rows]

    def record_event(self, user_id: str, node_id: int, points: int) -> MasteryRecord:
        first = apply_graded_event(None, user_id, node_id, points)
        self.store.execute(
            _RECORD_EVENT_SQL,
            [user_id, node_id, first.status, first.mastery_level, first.last_activity, points, points],
        )
        return self.get(user_id, node_id)


MASTERY_STORE = InMemoryMasteryStore()


def get_mastery_store(backend: str, store=None) -> MasteryStore:
    backend = (backend or "memory").lower()
    if backend == "sql" and store is not None:
        return SqlMasteryStore(store)
    if backend == "supabase":
        # lazy import to avoid dependency/testing issues
        from app.core.deps import get_supabase_client
        return SupabaseMasteryStore(get_supabase_client())
    if backend != "memory":
        logger.warning("[mastery_store] backend %r unavailable, using in-memory store", backend)
    return MASTERY_STORE


def record_graded_event(store: MasteryStore, user_id: str, node_id: int, points: int) -> MasteryRecord:
    record = store.record_event(user_id, node_id, points)
    logger.info(
        "[mastery_store] user=%s node=%s points=%+d -> %s/%d",
        user_id, node_id, points, record.status, record.mastery_level,
    )
    return record
