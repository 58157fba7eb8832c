import argparse
import logging

from shelftrack.db import SessionLocal, engine
from shelftrack.models import Base
from shelftrack.repository import normalize_legacy_rows

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def migrate_once(owner_id: str | None = None, dry_run: bool = False) -> tuple[int, int]:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        logger.info("Starting legacy progress migration.")
        scanned, converted = normalize_legacy_rows(db, owner_id=owner_id, dry_run=dry_run)
        logger.info("Migration done. Scanned %s, converted %s.", scanned, converted)
        return scanned, converted
    finally:
        db.close()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        description="Rewrite season-relative progress rows as absolute progress."
    )
    parser.add_argument("--owner", help="Only migrate items belonging to this owner id.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many rows would change without writing.",
    )
    args = parser.parse_args(argv)

    scanned, converted = migrate_once(owner_id=args.owner, dry_run=args.dry_run)
    verb = "Would convert" if args.dry_run else "Converted"
    print(f"Legacy migration completed. Scanned {scanned} rows. {verb} {converted}.")


if __name__ == "__main__":
    main()
