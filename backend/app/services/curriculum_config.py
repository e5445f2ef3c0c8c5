"""
Domain facts for the curriculum pipelines, loaded from JSON at startup:

  - taxonomy_prefixes    : curriculum code prefix -> apps that practise it
  - capability_specs     : app -> free-text description of what it can teach
  - audit_excluded_apps  : apps too deterministic to need an AI audit
  - leaf_level           : curriculum_nodes.level value of a competency stage
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel

from app.core.config import get_settings
from app.core.errors import ConfigurationGapError

logger = logging.getLogger(__name__)


class CurriculumConfig(BaseModel):
    leaf_level: str = "kompetenzstufe"
    taxonomy_prefixes: dict[str, list[str]] = {}
    capability_specs: dict[str, str] = {}
    audit_excluded_apps: list[str] = []

    def known_apps(self) -> list[str]:
        """All apps with a taxonomy mapping, in first-seen order."""
        seen: dict[str, None] = {}
        for apps in self.taxonomy_prefixes.values():
            for app_id in apps:
                seen.setdefault(app_id, None)
        return list(seen)

    def prefixes_for(self, app_id: str) -> list[str]:
        prefixes = [code for code, apps in self.taxonomy_prefixes.items() if app_id in apps]
        if not prefixes:
            raise ConfigurationGapError(app_id, "taxonomy mapping")
        return prefixes

    def capability_spec_for(self, app_id: str) -> str:
        spec = self.capability_specs.get(app_id)
        if not spec:
            raise ConfigurationGapError(app_id, "capability spec")
        return spec


def load_curriculum_config(path: str | Path) -> CurriculumConfig:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    config = CurriculumConfig.model_validate(data)
    logger.info(
        "[curriculum_config] loaded %d prefixes, %d capability specs from %s",
        len(config.taxonomy_prefixes), len(config.capability_specs), path,
    )
    return config


@lru_cache
def get_curriculum_config() -> CurriculumConfig:
    return load_curriculum_config(get_settings().curriculum_config_path)
