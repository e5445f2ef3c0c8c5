"""
Quality Reviewer — continuous AI audit of AI-generated content.

Each run:

  STEP 1 — Select candidates
    ai_generated AND NOT human_verified AND app not excluded, ordered by
    (ai_reviewed_counter ASC, flag_counter DESC), over-fetching limit x 5.

  STEP 2 — Sample
    Shuffle the over-fetched rows and keep the first `limit`. Best-effort
    diversity: least-reviewed / most-flagged rows are still favoured.

  STEP 3 — Count the attempt
    ai_reviewed_counter += 1 server side, committed BEFORE the oracle call so
    a crash mid-review still counts and the row cannot stay at the front of
    the queue forever.

  STEP 4 — Review
    The oracle returns PASS or FAILED (with reason and suggested correction).

  STEP 5 — Escalate
    FAILED -> flag_counter += 1 and one unresolved feedback entry, in one
    atomic batch. Oracle/contract failures are ERROR for that item only:
    no flag, no feedback, the run continues.
"""
from __future__ import annotations

import json
import logging
import random
from typing import Optional

from app.core.errors import OracleError, StoreError
from app.models.curriculum import AuditItemResult, AuditReport, ReviewVerdict
from app.prompts.curriculum import REVIEW_PROMPT, REVIEW_SYSTEM_PROMPT
from app.services.store import Statement

logger = logging.getLogger(__name__)

OVERFETCH_FACTOR = 5
MAX_LIMIT = 50

FEEDBACK_USER = "system"
FEEDBACK_SESSION = "quality-audit"
FEEDBACK_ERROR_TYPE = "ai_review_flag"

_BUMP_REVIEWED_SQL = (
    "UPDATE app_content SET ai_reviewed_counter = COALESCE(ai_reviewed_counter, 0) + 1 WHERE id = ?"
)
_BUMP_FLAG_SQL = "UPDATE app_content SET flag_counter = COALESCE(flag_counter, 0) + 1 WHERE id = ?"
_INSERT_FEEDBACK_SQL = """
    INSERT INTO feedback (user_uid, app_id, session_id, target_id, content, comment, error_type, resolved)
    VALUES (?, ?, ?, ?, ?, ?, ?, 0)
"""


def build_review_prompt(app_id: str, content) -> str:
    return REVIEW_PROMPT.format(app_id=app_id, content_json=json.dumps(content, ensure_ascii=False))


def feedback_comment(verdict: ReviewVerdict) -> str:
    return f"AI Review: {verdict.reason}. Suggestion: {json.dumps(verdict.correction, ensure_ascii=False)}"


def sample_candidates(rows: list[dict], limit: int, rng: random.Random) -> list[dict]:
    pool = list(rows)
    rng.shuffle(pool)
    return pool[:limit]


class QualityReviewer:
    def __init__(self, store, oracle, excluded_apps: list[str], rng: Optional[random.Random] = None):
        self.store = store
        self.oracle = oracle
        self.excluded_apps = list(excluded_apps)
        self.rng = rng or random.Random()

    def fetch_candidates(self, limit: int) -> list[dict]:
        sql = (
            "SELECT id, app_id, data, ai_reviewed_counter, flag_counter FROM app_content "
            "WHERE ai_generated = 1 AND human_verified = 0"
        )
        args: list = []
        if self.excluded_apps:
            sql += f" AND app_id NOT IN ({', '.join('?' for _ in self.excluded_apps)})"
            args.extend(self.excluded_apps)
        sql += (
            " ORDER BY COALESCE(ai_reviewed_counter, 0) ASC, COALESCE(flag_counter, 0) DESC, id ASC"
            " LIMIT ?"
        )
        args.append(limit * OVERFETCH_FACTOR)
        return self.store.query(sql, args)

    def review_item(self, app_id: str, content) -> ReviewVerdict:
        return self.oracle.complete_json(
            REVIEW_SYSTEM_PROMPT, build_review_prompt(app_id, content), ReviewVerdict
        )

    def flag(self, row: dict, content, verdict: ReviewVerdict) -> None:
        self.store.batch([
            Statement(_BUMP_FLAG_SQL, [row["id"]]),
            Statement(_INSERT_FEEDBACK_SQL, [
                FEEDBACK_USER,
                row["app_id"],
                FEEDBACK_SESSION,
                f"app_content:{row['id']}",
                json.dumps(content, ensure_ascii=False),
                feedback_comment(verdict),
                FEEDBACK_ERROR_TYPE,
            ]),
        ])

    def _audit_row(self, row: dict) -> AuditItemResult:
        item = AuditItemResult(id=row["id"], app_id=row["app_id"], status="ERROR")

        try:
            self.store.execute(_BUMP_REVIEWED_SQL, [row["id"]])
        except StoreError as exc:
            logger.error("[quality_reviewer] app_content %s: review counter not updated: %s", row["id"], exc)
            item.reason = str(exc)
            return item

        try:
            content = json.loads(row["data"])
        except (TypeError, json.JSONDecodeError):
            logger.warning("[quality_reviewer] app_content %s: payload is not JSON, skipping", row["id"])
            item.reason = "content payload is not valid JSON"
            return item
        if content is None or content in ("", 0, {}, []):
            logger.warning("[quality_reviewer] app_content %s: payload is empty, skipping", row["id"])
            item.reason = "content payload is empty"
            return item

        try:
            verdict = self.review_item(row["app_id"], content)
        except OracleError as exc:
            logger.error("[quality_reviewer] app_content %s: review failed: %s", row["id"], exc)
            item.reason = str(exc)
            return item

        if verdict.status == "PASS":
            item.status = "PASS"
            return item

        logger.warning("[quality_reviewer] Flagging app_content %s: %s", row["id"], verdict.reason)
        try:
            self.flag(row, content, verdict)
        except StoreError as exc:
            logger.error("[quality_reviewer] app_content %s: flag not recorded: %s", row["id"], exc)
            item.reason = f"flag not recorded: {exc}"
            return item
        item.status = "FAILED"
        item.reason = verdict.reason
        return item

    def run(self, limit: int = 1) -> AuditReport:
        limit = max(1, min(int(limit), MAX_LIMIT))
        selected = sample_candidates(self.fetch_candidates(limit), limit, self.rng)

        report = AuditReport(checked_count=len(selected))
        for row in selected:
            item = self._audit_row(row)
            report.results.append(item)
            if item.status == "PASS":
                report.passed += 1
            elif item.status == "FAILED":
                report.failed += 1
            else:
                report.errors += 1

        logger.info(
            "[quality_reviewer] Review complete: %d checked, %d passed, %d failed, %d error(s)",
            report.checked_count, report.passed, report.failed, report.errors,
        )
        return report
