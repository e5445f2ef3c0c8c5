#!/usr/bin/env python3
"""
Run one quality-audit pass over AI-generated content (what the scheduler calls).

Usage:
    cd backend
    python scripts/review_content.py --limit=5
"""
import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.core.deps import get_config, get_oracle, get_store
from app.services.quality_reviewer import MAX_LIMIT, QualityReviewer


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="AI review of unverified generated content")
    parser.add_argument("--limit", type=int, default=1, help=f"Items to review (1-{MAX_LIMIT})")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    reviewer = QualityReviewer(get_store(), get_oracle(), get_config().audit_excluded_apps)
    report = reviewer.run(args.limit)
    print(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
