import argparse
import logging
import os
import sys
from pathlib import Path

from core.logging_setup import setup_console_logging

setup_console_logging()

log = logging.getLogger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage the exam content catalog")
    parser.add_argument(
        "--db-dir",
        type=Path,
        default=None,
        help="Directory of the catalog database (overrides DB_DIR)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    import_cmd = commands.add_parser("import", help="Import a package export (.json)")
    import_cmd.add_argument("file", type=Path, help="Path to the package export")

    list_cmd = commands.add_parser("list", help="List imported packages")
    list_cmd.add_argument("--json", action="store_true", help="Print JSON")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.db_dir is not None:
        os.environ["DB_DIR"] = str(args.db_dir)

    # Config reads the environment at import time.
    from api.database import SessionLocal, init_db
    from api.services import catalog_service
    from api.utils import json_dump, read_json_file

    init_db()
    db = SessionLocal()
    try:
        if args.command == "import":
            if not args.file.exists():
                log.error(f"File not found: {args.file}")
                return 1
            data = read_json_file(args.file, default={})
            if not isinstance(data, dict):
                log.error("Package export must be a JSON object")
                return 1
            try:
                package = catalog_service.import_package(db, data)
            except (KeyError, ValueError) as exc:
                db.rollback()
                log.error(f"Invalid package export: {exc}")
                return 1
            print(f"Imported package {package.id} ({package.title})")
            return 0

        packages = catalog_service.list_packages(db)
        if args.json:
            print(json_dump(packages))
        elif not packages:
            print("No packages imported")
        else:
            for package in packages:
                print(f"{package['id']}\t{package['sectionCount']} sections\t{package['title']}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
