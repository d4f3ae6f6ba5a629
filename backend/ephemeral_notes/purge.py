"""Delete notes whose expiry has passed.

The service itself never deletes notes; run this from cron or another
scheduler::

    APP_DATA_DIR=/srv/notes/data ephemeral-notes-purge
"""
import argparse
from datetime import datetime, timezone

from ephemeral_notes.backend import get_backend
from ephemeral_notes.config import get_settings
from ephemeral_notes.logging_setup import configure_logging
from ephemeral_notes.notes.service import purge_expired_notes


def _parse_instant(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--now",
        type=_parse_instant,
        default=None,
        help="ISO-8601 instant to compare against instead of the current time",
    )
    args = parser.parse_args(argv)

    configure_logging(get_settings().LOG_LEVEL)
    removed = purge_expired_notes(get_backend().notes, now=args.now)
    print(f"Removed {removed} expired note(s).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
