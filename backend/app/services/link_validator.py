"""
Link Validator — re-audits every (app, curriculum node) pairing that has at
least one content link, using the app's capability spec and the oracle as a
yes/no judge.

Deletion is collect-then-delete: nothing is removed until every pairing has
been judged, so an oracle failure halfway through leaves the graph untouched.
Removing a pairing is a cascade (all content links of that app to the node,
plus the app's per-node config rows) applied as one atomic batch.
"""
from __future__ import annotations

import logging

from app.core.errors import ConfigurationGapError, OracleError, StoreError
from app.models.curriculum import PairingResult, ValidationReport, ValidityVerdict
from app.prompts.curriculum import VALIDATION_PROMPT, VALIDATION_SYSTEM_PROMPT
from app.services.curriculum_config import CurriculumConfig
from app.services.store import Statement

logger = logging.getLogger(__name__)

# Inner joins: links whose content or node no longer exists are never judged.
_PAIRINGS_SQL = """
    SELECT DISTINCT ac.app_id AS app_id, acc.curriculum_node_id AS node_id,
           cn.code AS code, cn.title AS title, cn.description AS description
    FROM app_content_curriculum acc
    JOIN app_content ac ON acc.app_content_id = ac.id
    JOIN curriculum_nodes cn ON acc.curriculum_node_id = cn.id
    ORDER BY app_id, code
"""

_DELETE_LINKS_SQL = """
    DELETE FROM app_content_curriculum
    WHERE curriculum_node_id = ?
      AND app_content_id IN (SELECT id FROM app_content WHERE app_id = ?)
"""

_DELETE_CONFIG_SQL = "DELETE FROM app_config WHERE app_id = ? AND curriculum_node_id = ?"


def cascade_statements(app_id: str, node_id: int) -> list[Statement]:
    return [
        Statement(_DELETE_LINKS_SQL, [node_id, app_id]),
        Statement(_DELETE_CONFIG_SQL, [app_id, node_id]),
    ]


class LinkValidator:
    def __init__(self, store, oracle, config: CurriculumConfig):
        self.store = store
        self.oracle = oracle
        self.config = config

    def fetch_pairings(self) -> list[dict]:
        return self.store.query(_PAIRINGS_SQL)

    def judge(self, pairing: dict, capability_spec: str) -> ValidityVerdict:
        prompt = VALIDATION_PROMPT.format(
            app_id=pairing["app_id"],
            capability_spec=capability_spec,
            code=pairing["code"],
            title=pairing["title"],
            description=pairing.get("description") or "",
        )
        return self.oracle.complete_json(VALIDATION_SYSTEM_PROMPT, prompt, ValidityVerdict)

    def delete_pairing(self, app_id: str, node_id: int) -> None:
        self.store.batch(cascade_statements(app_id, node_id))

    def run(self, dry_run: bool = False) -> ValidationReport:
        report = ValidationReport(dry_run=dry_run)
        pairings = self.fetch_pairings()
        logger.info("[link_validator] %d app-node pairings to check", len(pairings))

        to_delete: list[PairingResult] = []
        for pairing in pairings:
            item = PairingResult(
                app_id=pairing["app_id"],
                node_id=pairing["node_id"],
                code=pairing["code"],
                status="SKIPPED",
            )
            report.pairings.append(item)

            try:
                spec = self.config.capability_spec_for(item.app_id)
            except ConfigurationGapError as exc:
                item.reason = str(exc)
                report.skipped += 1
                continue

            report.checked += 1
            try:
                verdict = self.judge(pairing, spec)
            except OracleError as exc:
                logger.error(
                    "[link_validator] %s <-> %s (node %s) could not be judged: %s",
                    item.app_id, item.code, item.node_id, exc,
                )
                item.status = "ERROR"
                item.reason = str(exc)
                report.errors += 1
                continue

            item.reason = verdict.reason
            if verdict.valid:
                item.status = "VALID"
                report.valid += 1
                logger.info("[link_validator] VALID   %s <-> %s", item.app_id, item.code)
            else:
                item.status = "INVALID"
                report.invalid += 1
                to_delete.append(item)
                logger.info(
                    "[link_validator] INVALID %s <-> %s: %s", item.app_id, item.code, verdict.reason
                )

        if dry_run or not to_delete:
            return report

        logger.info("[link_validator] deleting links for %d invalid pairing(s)", len(to_delete))
        for item in to_delete:
            try:
                self.delete_pairing(item.app_id, item.node_id)
                item.deleted = True
                report.deleted += 1
            except StoreError as exc:
                logger.error(
                    "[link_validator] cascade delete failed for %s <-> node %s: %s",
                    item.app_id, item.node_id, exc,
                )
                item.delete_failed = True
        return report
