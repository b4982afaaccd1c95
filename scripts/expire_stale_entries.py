#!/usr/bin/env python3
"""Mark long-abandoned waiting queue entries as no-shows.

Meant to run from cron every few minutes, e.g.:
    */5 * * * * python scripts/expire_stale_entries.py --max-age 240
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from salonqueue import create_app
from salonqueue.errors import StoreUnavailable
from salonqueue.queue_store import queue_store


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--max-age",
        type=int,
        default=None,
        help="minutes a waiting entry may sit before it expires (default: QUEUE_WAITING_TTL_MINUTES)",
    )
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        try:
            expired = queue_store.expire_stale(args.max_age)
        except StoreUnavailable as exc:
            print(f"❌ {exc.message}")
            return 1
    print(f"✅ Expired {expired} stale queue entries")
    return 0


if __name__ == "__main__":
    sys.exit(main())
