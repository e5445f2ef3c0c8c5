#!/usr/bin/env python3
"""
Link app content to competency-stage curriculum nodes with the AI classifier.

Usage:
    cd backend
    python scripts/smart_link.py --app=kopfrechnen --dry-run
    python scripts/smart_link.py --limit=50 --batch-size=10

Reads the store/oracle settings from the environment (.env).
"""
import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.core.config import get_settings
from app.core.deps import get_config, get_oracle, get_store
from app.services.curriculum_linker import CurriculumLinker


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Classify app content against the curriculum")
    parser.add_argument("--app", default=None, help="Only this app id (default: all mapped apps)")
    parser.add_argument("--limit", type=int, default=0, help="Max content items per app (0 = all)")
    parser.add_argument("--batch-size", type=int, default=None, help="Items per oracle call")
    parser.add_argument("--dry-run", action="store_true", help="Log mappings, write nothing")
    args = parser.parse_args(argv)
    if args.limit < 0:
        parser.error("--limit must be 0 (all) or positive")
    if args.batch_size is not None and args.batch_size < 1:
        parser.error("--batch-size must be at least 1")

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    settings = get_settings()

    linker = CurriculumLinker(get_store(), get_oracle(), get_config(), max_workers=settings.linking_max_workers)
    report = linker.run(
        app_id=args.app,
        batch_size=args.batch_size or settings.linking_batch_size,
        limit=args.limit or None,
        dry_run=args.dry_run,
    )
    print(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    return 1 if any(a.failed_batches for a in report.apps) else 0


if __name__ == "__main__":
    sys.exit(main())
