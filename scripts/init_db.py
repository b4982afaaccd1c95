#!/usr/bin/env python3
"""Create (or rebuild with --reset) the SalonQueue tables."""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect

from salonqueue import create_app
from salonqueue.extensions import db


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop every table first (destroys data)")
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            print("🗑️  Dropped existing tables")
        db.create_all()
        tables = sorted(inspect(db.engine).get_table_names())
    print(f"✅ Tables ready: {', '.join(tables)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
