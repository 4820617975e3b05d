#!/usr/bin/env python3
"""
Re-run scoring for every race with stored results and write the rows back.

Useful after correcting stored outcomes by hand; rescoring unchanged data
leaves every row as it was.
"""
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from paddock import datastore_pg as pg  # noqa: E402
from paddock.routes import rescore_all_races  # noqa: E402


def main() -> int:
    if not os.environ.get("DATABASE_URL"):
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1
    pg.init_pool()
    count = rescore_all_races()
    print(f"Rescored {count} races")
    return 0


if __name__ == "__main__":
    sys.exit(main())
