#!/usr/bin/env python3
"""
Create the PostgreSQL schema used by paddock (teams, racers, races,
registrations and results). Safe to run repeatedly.
"""
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from paddock import datastore  # noqa: E402


def main() -> int:
    if not os.environ.get("DATABASE_URL"):
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1
    datastore.create_tables()
    print("Database schema created successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
