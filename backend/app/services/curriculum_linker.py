"""
Curriculum Linker — assigns each content item of an app to at most one
competency-stage curriculum node, using the oracle as classifier.

Per app:

  STEP 1 — Resolve taxonomy prefixes
    From CurriculumConfig.taxonomy_prefixes. An app without a mapping is
    skipped (ConfigurationGapError), never an error.

  STEP 2 — Fetch candidate nodes
    All leaf-level nodes whose code starts with one of the prefixes.
    No candidates -> app skipped.

  STEP 3 — Fetch content and split into batches (default 10 items)

  STEP 4 — Classify batches
    Each item is summarised as a 200-char JSON dump; every candidate node is
    listed in full. Batches are classified concurrently by a bounded thread
    pool; answers are applied one batch at a time on the calling thread.

  STEP 5 — Apply
    INSERT OR IGNORE for every non-null mapping, one atomic store batch per
    content batch. Dry-run only logs the mapping.

A failed batch (oracle, contract or store error) is logged and counted; the
run continues with the next batch. There is no retry within a run.
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

from app.core.errors import ConfigurationGapError, OracleError, StoreError
from app.models.curriculum import AppLinkingResult, LinkingReport, LinkMapping
from app.prompts.curriculum import LINKING_PROMPT, LINKING_SYSTEM_PROMPT
from app.services.curriculum_config import CurriculumConfig
from app.services.store import Statement

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
SUMMARY_CHARS = 200

_INSERT_LINK_SQL = (
    "INSERT OR IGNORE INTO app_content_curriculum (app_content_id, curriculum_node_id) "
    "VALUES (?, ?)"
)


@dataclass
class CurriculumNode:
    id: int
    code: str
    title: str
    description: Optional[str] = None


@dataclass
class ContentItem:
    id: int
    app_id: str
    data: Any


# ---------------------------------------------------------------------------
# Prompt helpers (pure)
# ---------------------------------------------------------------------------

def _summarise_content(item: ContentItem) -> str:
    dump = item.data if isinstance(item.data, str) else json.dumps(item.data, ensure_ascii=False)
    return f"ID {item.id}: {dump[:SUMMARY_CHARS]}"


def _summarise_node(node: CurriculumNode) -> str:
    suffix = f" - {node.description}" if node.description else ""
    return f"Node {node.id} ({node.code}): {node.title}{suffix}"


def build_linking_prompt(app_id: str, batch: list[ContentItem], nodes: list[CurriculumNode]) -> str:
    return LINKING_PROMPT.format(
        app_id=app_id,
        node_summaries="\n".join(_summarise_node(n) for n in nodes),
        content_summaries="\n".join(_summarise_content(c) for c in batch),
    )


def _chunk(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _check_bounds(batch_size: int, limit: Optional[int]) -> None:
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    if limit is not None and limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")


def _decode_data(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# ---------------------------------------------------------------------------
# CurriculumLinker
# ---------------------------------------------------------------------------

class CurriculumLinker:
    def __init__(self, store, oracle, config: CurriculumConfig, max_workers: int = 4):
        self.store = store
        self.oracle = oracle
        self.config = config
        self.max_workers = max(1, max_workers)

    # ── store reads ──────────────────────────────────────────────────────

    def fetch_candidate_nodes(self, prefixes: list[str]) -> list[CurriculumNode]:
        where = " OR ".join("code LIKE ?" for _ in prefixes)
        rows = self.store.query(
            f"SELECT id, code, title, description FROM curriculum_nodes "
            f"WHERE level = ? AND ({where}) ORDER BY code",
            [self.config.leaf_level, *(f"{p}%" for p in prefixes)],
        )
        return [CurriculumNode(**row) for row in rows]

    def fetch_content(self, app_id: str, limit: Optional[int] = None) -> list[ContentItem]:
        sql = "SELECT id, app_id, data FROM app_content WHERE app_id = ? ORDER BY id"
        args: list[Any] = [app_id]
        if limit is not None:
            sql += " LIMIT ?"
            args.append(limit)
        rows = self.store.query(sql, args)
        return [ContentItem(id=r["id"], app_id=r["app_id"], data=_decode_data(r["data"])) for r in rows]

    # ── oracle ───────────────────────────────────────────────────────────

    def classify_batch(
        self, app_id: str, batch: list[ContentItem], nodes: list[CurriculumNode]
    ) -> list[tuple[int, int]]:
        """Ask the oracle for a mapping and keep only links between known ids."""
        mapping = self.oracle.complete_json(
            LINKING_SYSTEM_PROMPT, build_linking_prompt(app_id, batch, nodes), LinkMapping
        )
        batch_ids = {c.id for c in batch}
        node_ids = {n.id for n in nodes}
        links = []
        for content_id, node_id in mapping.links():
            if content_id not in batch_ids or node_id not in node_ids:
                logger.warning(
                    "[curriculum_linker] app=%s dropping dangling link content=%s node=%s",
                    app_id, content_id, node_id,
                )
                continue
            links.append((content_id, node_id))
        return links

    # ── store writes ─────────────────────────────────────────────────────

    def apply_links(self, links: list[tuple[int, int]]) -> int:
        """Insert links atomically; returns how many rows were new."""
        if not links:
            return 0
        counts = self.store.batch([Statement(_INSERT_LINK_SQL, [c, n]) for c, n in links])
        return sum(max(c, 0) for c in counts)

    # ── pipeline ─────────────────────────────────────────────────────────

    def link_app(
        self,
        app_id: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        limit: Optional[int] = None,
        dry_run: bool = False,
    ) -> AppLinkingResult:
        _check_bounds(batch_size, limit)
        result = AppLinkingResult(app_id=app_id)
        try:
            result.prefixes = self.config.prefixes_for(app_id)
        except ConfigurationGapError as exc:
            logger.info("[curriculum_linker] skipping %s: %s", app_id, exc)
            result.status = "skipped"
            result.skip_reason = str(exc)
            return result

        nodes = self.fetch_candidate_nodes(result.prefixes)
        result.node_count = len(nodes)
        if not nodes:
            logger.info(
                "[curriculum_linker] no %s nodes for %s (prefixes %s), skipping",
                self.config.leaf_level, app_id, ", ".join(result.prefixes),
            )
            result.status = "skipped"
            result.skip_reason = "no candidate curriculum nodes"
            return result

        contents = self.fetch_content(app_id, limit)
        result.content_count = len(contents)
        batches = _chunk(contents, batch_size)
        result.batch_count = len(batches)
        logger.info(
            "[curriculum_linker] %s: %d nodes, %d items, %d batches (dry_run=%s)",
            app_id, len(nodes), len(contents), len(batches), dry_run,
        )

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self.classify_batch, app_id, b, nodes) for b in batches]
            for batch, future in zip(batches, futures):
                ids = [c.id for c in batch]
                try:
                    links = future.result()
                except OracleError as exc:
                    logger.error(
                        "[curriculum_linker] app=%s batch %s classification failed: %s",
                        app_id, ids, exc,
                    )
                    result.failed_batches += 1
                    continue

                result.proposed_links += len(links)
                if dry_run:
                    logger.info("[curriculum_linker] [dry-run] %s mapping: %s", app_id, links)
                    result.dry_run_mappings.update({str(c): n for c, n in links})
                    continue

                try:
                    result.created_links += self.apply_links(links)
                except StoreError as exc:
                    logger.error(
                        "[curriculum_linker] app=%s batch %s insert failed: %s", app_id, ids, exc
                    )
                    result.failed_batches += 1

        logger.info(
            "[curriculum_linker] %s done: proposed=%d created=%d failed_batches=%d",
            app_id, result.proposed_links, result.created_links, result.failed_batches,
        )
        return result

    def run(
        self,
        app_id: Optional[str] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        limit: Optional[int] = None,
        dry_run: bool = False,
    ) -> LinkingReport:
        _check_bounds(batch_size, limit)
        app_ids = [app_id] if app_id else self.config.known_apps()
        report = LinkingReport(dry_run=dry_run)
        for aid in app_ids:
            try:
                report.apps.append(self.link_app(aid, batch_size=batch_size, limit=limit, dry_run=dry_run))
            except StoreError as exc:
                logger.error("[curriculum_linker] app=%s aborted: %s", aid, exc)
                report.apps.append(AppLinkingResult(app_id=aid, status="skipped", skip_reason=str(exc)))
        return report
