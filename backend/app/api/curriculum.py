import asyncio
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.auth import require_admin
from app.core.config import get_settings
from app.core.deps import get_config, get_oracle, get_store
from app.core.errors import StoreError
from app.models.curriculum import (
    AuditReport,
    LinkingReport,
    LinkRequest,
    ValidateRequest,
    ValidationReport,
)
from app.services.curriculum_linker import CurriculumLinker
from app.services.link_validator import LinkValidator
from app.services.quality_reviewer import MAX_LIMIT, QualityReviewer
from app.services.telemetry import instrument, pipeline_run

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["curriculum-admin"])


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------

@router.post("/curriculum/link", response_model=LinkingReport)
@instrument(route="/api/admin/curriculum/link")
async def link_content(
    request: LinkRequest,
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    oracle=Depends(get_oracle),
    config=Depends(get_config),
):
    """Classify an app's content (or every mapped app's) against the curriculum."""
    settings = get_settings()
    batch_size = request.batch_size or settings.linking_batch_size

    linker = CurriculumLinker(store, oracle, config, max_workers=settings.linking_max_workers)
    t0 = time.time()
    report = await asyncio.to_thread(
        linker.run,
        app_id=request.app_id,
        batch_size=batch_size,
        limit=request.limit,
        dry_run=request.dry_run,
    )
    pipeline_run("linking", t0, {
        "apps": len(report.apps),
        "created_links": report.created_links,
        "failed_batches": sum(a.failed_batches for a in report.apps),
    })
    logger.info("[curriculum.link_content] run by admin=%s app=%s", admin_id, request.app_id or "ALL")
    return report


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@router.post("/curriculum/validate", response_model=ValidationReport)
@instrument(route="/api/admin/curriculum/validate")
async def validate_links(
    request: ValidateRequest,
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    oracle=Depends(get_oracle),
    config=Depends(get_config),
):
    """Re-judge every linked app-node pairing and prune the invalid ones."""
    validator = LinkValidator(store, oracle, config)
    t0 = time.time()
    try:
        report = await asyncio.to_thread(validator.run, dry_run=request.dry_run)
    except StoreError as exc:
        logger.error("[curriculum.validate_links] cannot read pairings: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to read curriculum links")
    pipeline_run("validation", t0, {
        "checked": report.checked,
        "invalid": report.invalid,
        "skipped": report.skipped,
        "deleted": report.deleted,
    })
    logger.info("[curriculum.validate_links] run by admin=%s", admin_id)
    return report


# ---------------------------------------------------------------------------
# Quality audit (also reachable via GET for schedulers)
# ---------------------------------------------------------------------------

@router.api_route("/review/run", methods=["GET", "POST"], response_model=AuditReport)
@instrument(route="/api/admin/review/run")
async def run_quality_review(
    limit: Optional[int] = Query(None, ge=1, le=MAX_LIMIT),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    oracle=Depends(get_oracle),
    config=Depends(get_config),
):
    """Audit a sample of AI-generated, unverified content."""
    reviewer = QualityReviewer(store, oracle, config.audit_excluded_apps)
    t0 = time.time()
    try:
        report = await asyncio.to_thread(reviewer.run, limit or get_settings().audit_default_limit)
    except StoreError as exc:
        logger.error("[curriculum.run_quality_review] cannot select candidates: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to select content for review")
    pipeline_run("quality_audit", t0, {
        "checked": report.checked_count,
        "passed": report.passed,
        "failed": report.failed,
        "errors": report.errors,
    })
    logger.info("[curriculum.run_quality_review] run by admin=%s", admin_id)
    return report
