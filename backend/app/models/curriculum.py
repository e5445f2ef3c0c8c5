import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, StrictBool, StrictInt, StrictStr, computed_field, field_validator


# ---------------------------------------------------------------------------
# Oracle response schemas
# ---------------------------------------------------------------------------

_ID_KEY_RE = re.compile(r"\s*\d+\s*", re.ASCII)


class LinkMapping(RootModel[dict[str, Optional[StrictInt]]]):
    """Flat {"<content id>": <node id> | null} answer of the linking oracle."""

    @field_validator("root")
    @classmethod
    def _keys_are_ids(cls, value: dict[str, Optional[int]]) -> dict[str, Optional[int]]:
        for key in value:
            if not _ID_KEY_RE.fullmatch(key):
                raise ValueError(f"content id key {key!r} is not an integer")
        return value

    def links(self) -> list[tuple[int, int]]:
        """Return (content_id, node_id) pairs, nulls dropped."""
        return [(int(k), v) for k, v in self.root.items() if v is not None]


class ValidityVerdict(BaseModel):
    model_config = ConfigDict(extra="ignore")

    valid: StrictBool
    reason: StrictStr


class ReviewVerdict(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Literal["PASS", "FAILED"]
    reason: Optional[str] = None
    correction: Any = None


# ---------------------------------------------------------------------------
# Pipeline reports (returned by the admin endpoints)
# ---------------------------------------------------------------------------

class AppLinkingResult(BaseModel):
    app_id: str
    status: Literal["linked", "skipped"] = "linked"
    skip_reason: Optional[str] = None
    prefixes: list[str] = []
    node_count: int = 0
    content_count: int = 0
    batch_count: int = 0
    failed_batches: int = 0
    proposed_links: int = 0
    created_links: int = 0
    dry_run_mappings: dict[str, Optional[int]] = {}


class LinkingReport(BaseModel):
    dry_run: bool = False
    apps: list[AppLinkingResult] = []

    @computed_field
    @property
    def created_links(self) -> int:
        return sum(a.created_links for a in self.apps)


class PairingResult(BaseModel):
    app_id: str
    node_id: int
    code: str
    status: Literal["VALID", "INVALID", "SKIPPED", "ERROR"]
    reason: Optional[str] = None
    deleted: bool = False
    delete_failed: bool = False


class ValidationReport(BaseModel):
    dry_run: bool = False
    checked: int = 0
    valid: int = 0
    invalid: int = 0
    skipped: int = 0
    errors: int = 0
    deleted: int = 0
    pairings: list[PairingResult] = []


class AuditItemResult(BaseModel):
    source: str = "app_content"
    id: int
    app_id: str
    status: Literal["PASS", "FAILED", "ERROR"]
    reason: Optional[str] = None


class AuditReport(BaseModel):
    checked_count: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    results: list[AuditItemResult] = []


# ---------------------------------------------------------------------------
# Trigger requests
# ---------------------------------------------------------------------------

class LinkRequest(BaseModel):
    app_id: Optional[str] = None
    batch_size: Optional[int] = Field(None, ge=1)
    limit: Optional[int] = Field(None, ge=1)
    dry_run: bool = False


class ValidateRequest(BaseModel):
    dry_run: bool = False


class QuestionProgressEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    app_id: str = Field("", alias="appId")
    category: Optional[str] = None
    is_correct: Optional[bool] = Field(None, alias="isCorrect")
    points: Optional[int] = None
    node_id: Optional[int] = Field(None, alias="nodeId")
