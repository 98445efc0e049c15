from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from erp.config import load_settings
from erp.db import connect, ensure_schema
from erp.services.migration import ExcelMigrator, format_report
from erp.services.sheet_parser import LAYOUTS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="erp-migrate",
        description="Import a sales / purchase workbook into the ERP database.",
    )
    parser.add_argument("source", help="Path to the .xlsx workbook")
    parser.add_argument("--sheet", help="Worksheet name (default: first sales-looking sheet)")
    parser.add_argument("--layout", choices=["auto", *sorted(LAYOUTS)], default="auto")
    parser.add_argument("--db", help="SQLite database file (default: <data dir>/erp.db)")
    parser.add_argument("--clear", action="store_true", help="Delete existing data before importing")
    parser.add_argument("--batch-size", type=int, help="Sales rows per committed batch")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings()
    db_path = Path(args.db).expanduser() if args.db else settings.db_path
    batch_size = args.batch_size or settings.sales_batch_size

    conn = connect(db_path)
    try:
        ensure_schema(conn)
        migrator = ExcelMigrator(conn, batch_size=batch_size, clear_existing=args.clear)
        report = migrator.run(args.source, sheet_name=args.sheet, layout=args.layout)
    finally:
        conn.close()

    if args.json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(format_report(report))

    if not report.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
