import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventpass.config import resolve_database_path
from eventpass.database import Database


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Allow-list a team member for the attendance scanner")
    parser.add_argument("email", help="Google account email used to sign in")
    parser.add_argument("--name", default=None, help="Display name (otherwise taken from Google on first login)")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to EVENTPASS_DB_PATH or data/eventpass.sqlite3)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    db_env = args.db_path or os.getenv("EVENTPASS_DB_PATH")
    db_path = resolve_database_path(db_env)

    database = Database(db_path)
    database.initialize()

    try:
        member = database.add_staff(args.email, args.name)
    except ValueError as exc:  # duplicates, empty email
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Added staff member #{member.id}: {member.email}")
    print("Add the address to config/staff.yaml as well to keep it across fresh databases.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
