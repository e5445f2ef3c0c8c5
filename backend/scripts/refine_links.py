#!/usr/bin/env python3
"""
Re-judge every linked (app, curriculum node) pairing against the app's
capability spec and delete the pairings the oracle rejects.

Usage:
    cd backend
    python scripts/refine_links.py --dry-run
"""
import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.core.deps import get_config, get_oracle, get_store
from app.services.link_validator import LinkValidator


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Prune curriculum links the app cannot teach")
    parser.add_argument("--dry-run", action="store_true", help="Judge only, delete nothing")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    report = LinkValidator(get_store(), get_oracle(), get_config()).run(dry_run=args.dry_run)
    print(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    if report.invalid == 0:
        print("\nNo invalid links found.", file=sys.stderr)
    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
