"""
Workbook import: parsed sheet rows -> customers, suppliers, items, purchases, sales.

Stages run in a fixed order (entities before the transactions that reference
them, purchases before sales so a sale can take its cost basis from a purchase
imported in the same run):

    INIT -> READ_SOURCE -> MIGRATE_CUSTOMERS -> MIGRATE_SUPPLIERS -> MIGRATE_ITEMS
         -> MIGRATE_PURCHASES -> MIGRATE_SALES -> REPORT -> DONE

with FAILED reachable from every stage. Each entity stage and the purchase stage
is one transaction; sales are committed in batches. Every row runs in its own
savepoint, so a bad row is counted and skipped without leaving partial writes,
while a failure of the batch itself rolls the batch back and stops the run.

Re-importing the same workbook never duplicates customers, suppliers or items
(names are resolved), but it does insert its sales and purchases again unless
``clear_existing`` is set.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Optional, Sequence

from erp.config import DEFAULT_BATCH_SIZE
from erp.db import transaction
from erp.errors import EntityResolutionError, ForeignKeyMissing, SourceNotFound, TransactionFailure
from erp.services import entities
from erp.services.demo_data import wipe_all
from erp.services.purchases import create_purchase
from erp.services.sales import create_sale
from erp.services.sheet_parser import ItemRef, ParsedSheet, PurchaseRow, SaleRow, parse_sheet
from erp.services.workbook import read_rows

logger = logging.getLogger(__name__)

INIT = "INIT"
READ_SOURCE = "READ_SOURCE"
MIGRATE_CUSTOMERS = "MIGRATE_CUSTOMERS"
MIGRATE_SUPPLIERS = "MIGRATE_SUPPLIERS"
MIGRATE_ITEMS = "MIGRATE_ITEMS"
MIGRATE_PURCHASES = "MIGRATE_PURCHASES"
MIGRATE_SALES = "MIGRATE_SALES"
REPORT = "REPORT"
DONE = "DONE"
FAILED = "FAILED"

STAGES = (
    INIT,
    READ_SOURCE,
    MIGRATE_CUSTOMERS,
    MIGRATE_SUPPLIERS,
    MIGRATE_ITEMS,
    MIGRATE_PURCHASES,
    MIGRATE_SALES,
    REPORT,
    DONE,
)

ENTITY_TYPES = ("customers", "suppliers", "items", "purchases", "sales")

# Failures that belong to one row: counted, logged, row skipped.
ROW_ERRORS = (ForeignKeyMissing, EntityResolutionError, ValueError, sqlite3.IntegrityError)

IMPORTED_SUPPLIER_TERMS = "현금"
IMPORTED_ITEM_CATEGORY = "전자부품"
IMPORTED_ITEM_UNIT = "개"


@dataclass
class StageStats:
    total: int = 0
    success: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "success": self.success, "errors": self.errors}


@dataclass
class MigrationReport:
    customers: StageStats = field(default_factory=StageStats)
    suppliers: StageStats = field(default_factory=StageStats)
    items: StageStats = field(default_factory=StageStats)
    purchases: StageStats = field(default_factory=StageStats)
    sales: StageStats = field(default_factory=StageStats)

    status: str = INIT
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    sheet_name: Optional[str] = None
    layout: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == DONE

    def stats(self, entity_type: str) -> StageStats:
        return getattr(self, entity_type)

    def totals(self) -> StageStats:
        out = StageStats()
        for name in ENTITY_TYPES:
            s = self.stats(name)
            out.total += s.total
            out.success += s.success
            out.errors += s.errors
        return out

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {name: self.stats(name).to_dict() for name in ENTITY_TYPES}
        d.update(
            {
                "total": self.totals().to_dict(),
                "status": self.status,
                "failed_stage": self.failed_stage,
                "error": self.error,
                "sheet_name": self.sheet_name,
                "layout": self.layout,
                "warnings": list(self.warnings),
            }
        )
        return d


def _pct(n: int, total: int) -> int:
    return round(n / total * 100) if total else 0


def format_report(report: MigrationReport) -> str:
    t = report.totals()
    labels = {
        "customers": "Customers",
        "suppliers": "Suppliers",
        "items": "Items",
        "purchases": "Purchases",
        "sales": "Sales",
    }
    lines = [
        "Migration report",
        "================================",
        f"Status:   {report.status}" + (f" (stage {report.failed_stage})" if report.failed_stage else ""),
    ]
    if report.sheet_name:
        lines.append(f"Sheet:    {report.sheet_name} ({report.layout or '?'} layout)")
    lines += [
        f"Records:  {t.total}",
        f"Success:  {t.success} ({_pct(t.success, t.total)}%)",
        f"Errors:   {t.errors} ({_pct(t.errors, t.total)}%)",
        "",
        "Details:",
    ]
    for name in ENTITY_TYPES:
        s = report.stats(name)
        lines.append(f"  {labels[name]:<10} {s.success}/{s.total} (errors: {s.errors})")
    if report.error:
        lines += ["", f"Error: {report.error}"]
    for w in report.warnings:
        lines.append(f"Warning: {w}")
    return "\n".join(lines)


_Pending = Optional[tuple[dict, str, int]]


class ExcelMigrator:
    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clear_existing: bool = False,
        today: Optional[str] = None,
    ):
        if int(batch_size) <= 0:
            raise ValueError("Batch size must be > 0.")
        self.conn = conn
        self.batch_size = int(batch_size)
        self.clear_existing = bool(clear_existing)
        self.today = today
        self.report = MigrationReport()
        self.customer_map: dict[str, int] = {}
        self.supplier_map: dict[str, int] = {}
        self.item_map: dict[str, int] = {}

    # -------------------------
    # Entry points
    # -------------------------

    def run(
        self,
        source: str | BinaryIO,
        *,
        sheet_name: Optional[str] = None,
        layout: str = "auto",
    ) -> MigrationReport:
        self._enter(READ_SOURCE)
        try:
            name, rows = read_rows(source, sheet_name)
        except SourceNotFound as e:
            return self._fail(e)
        self.report.sheet_name = name
        return self.migrate_rows(rows, layout=layout)

    def migrate_rows(self, rows: Sequence[Sequence[Any]], *, layout: str = "auto") -> MigrationReport:
        try:
            parsed = parse_sheet(rows, layout, today=self.today)
        except ValueError as e:
            return self._fail(e)
        return self.migrate(parsed)

    def migrate(self, parsed: ParsedSheet) -> MigrationReport:
        self.report.layout = parsed.layout
        if parsed.date_fallbacks:
            self.report.warnings.append(
                f"{parsed.date_fallbacks} date cell(s) could not be parsed; today's date was used."
            )

        try:
            if self.clear_existing:
                logger.info("Clearing existing data before import")
                with transaction(self.conn):
                    wipe_all(self.conn)

            self._migrate_customers(parsed.customers)
            self._migrate_suppliers(parsed.suppliers)
            self._migrate_items(parsed.items)
            self._migrate_purchases(parsed.purchases)
            self._migrate_sales(parsed.sales)
        except TransactionFailure as e:
            return self._fail(e)
        except sqlite3.Error as e:
            return self._fail(TransactionFailure(self.report.status, str(e)))

        self._enter(REPORT)
        logger.info("\n%s", format_report(self.report))
        self._enter(DONE)
        return self.report

    # -------------------------
    # Stage plumbing
    # -------------------------

    def _enter(self, stage: str) -> None:
        self.report.status = stage
        logger.debug("Import stage: %s", stage)

    def _fail(self, error: Exception) -> MigrationReport:
        self.report.failed_stage = self.report.status
        self.report.error = str(error)
        self.report.status = FAILED
        logger.error("Import failed during %s: %s", self.report.failed_stage, error)
        return self.report

    def _run_batch(
        self,
        stats: StageStats,
        rows: Sequence[Any],
        handle_row: Callable[[Any], _Pending],
        describe: Callable[[Any], str],
    ) -> None:
        """
        One transaction around `rows`, one savepoint around each row.

        Name->id map entries produced by the rows are only published after the
        batch commits. If the batch itself fails, all of its rows are counted
        as errors and TransactionFailure is raised.
        """
        ok = 0
        failed = 0
        pending: list[tuple[dict, str, int]] = []
        try:
            with transaction(self.conn):
                for row in rows:
                    try:
                        with transaction(self.conn):
                            result = handle_row(row)
                    except ROW_ERRORS as e:
                        failed += 1
                        logger.error("%s failed: %s", describe(row), e)
                        continue
                    ok += 1
                    if result is not None:
                        pending.append(result)
        except Exception as e:
            stats.errors += len(rows)
            raise TransactionFailure(self.report.status, f"batch rolled back: {e}") from e

        stats.success += ok
        stats.errors += failed
        for target, key, value in pending:
            target[key] = value

    # -------------------------
    # Entity stages
    # -------------------------

    def _migrate_customers(self, names: list[str]) -> None:
        self._enter(MIGRATE_CUSTOMERS)
        stats = self.report.customers
        stats.total = len(names)

        def handle(name: str) -> _Pending:
            return self.customer_map, name, entities.resolve(self.conn, "customer", name)

        self._run_batch(stats, names, handle, lambda n: f"Customer '{n}'")
        logger.info("Customers migrated (%s/%s)", stats.success, stats.total)

    def _migrate_suppliers(self, names: list[str]) -> None:
        self._enter(MIGRATE_SUPPLIERS)
        stats = self.report.suppliers
        stats.total = len(names)

        def handle(name: str) -> _Pending:
            supplier_id = entities.resolve(
                self.conn,
                "supplier",
                name,
                payment_terms=IMPORTED_SUPPLIER_TERMS,
                notes="엑셀에서 이전",
            )
            return self.supplier_map, name, supplier_id

        self._run_batch(stats, names, handle, lambda n: f"Supplier '{n}'")
        logger.info("Suppliers migrated (%s/%s)", stats.success, stats.total)

    def _migrate_items(self, items: list[ItemRef]) -> None:
        self._enter(MIGRATE_ITEMS)
        stats = self.report.items
        stats.total = len(items)

        def handle(item: ItemRef) -> _Pending:
            existing = entities.get_by_natural_key(self.conn, "item", item.name)
            if existing is not None:
                return self.item_map, item.name, int(existing["id"])
            item_id = entities.resolve(
                self.conn,
                "item",
                item.name,
                code=item.code or entities.next_item_code(self.conn),
                category=IMPORTED_ITEM_CATEGORY,
                unit=IMPORTED_ITEM_UNIT,
                standard_price=0,
                description=f"엑셀에서 이전: {item.name}",
            )
            return self.item_map, item.name, item_id

        self._run_batch(stats, items, handle, lambda i: f"Item '{i.name}'")
        logger.info("Items migrated (%s/%s)", stats.success, stats.total)

    # -------------------------
    # Transaction stages
    # -------------------------

    def _lookup(self, mapping: dict[str, int], kind: str, name: str, row_index: int) -> int:
        found = mapping.get(name)
        if found is None:
            raise ForeignKeyMissing(kind, name, row_index)
        return found

    def _migrate_purchases(self, rows: list[PurchaseRow]) -> None:
        self._enter(MIGRATE_PURCHASES)
        stats = self.report.purchases
        stats.total = len(rows)
        if not rows:
            return

        def handle(p: PurchaseRow) -> _Pending:
            create_purchase(
                self.conn,
                supplier_id=self._lookup(self.supplier_map, "supplier", p.supplier_name, p.raw_row_index),
                item_id=self._lookup(self.item_map, "item", p.item_name, p.raw_row_index),
                purchase_date=p.purchase_date,
                quantity=p.quantity,
                unit_cost=p.unit_cost,
                vat_amount=p.vat,
                expected_sale_price=p.expected_sale_price,
                status="received",
                notes=f"엑셀 {p.raw_row_index}행에서 이전",
            )
            return None

        self._run_batch(stats, rows, handle, lambda p: f"Purchase row {p.raw_row_index}")
        logger.info("Purchases migrated (%s/%s)", stats.success, stats.total)

    def _migrate_sales(self, rows: list[SaleRow]) -> None:
        self._enter(MIGRATE_SALES)
        stats = self.report.sales
        stats.total = len(rows)

        def handle(s: SaleRow) -> _Pending:
            create_sale(
                self.conn,
                customer_id=self._lookup(self.customer_map, "customer", s.customer_name, s.raw_row_index),
                item_id=self._lookup(self.item_map, "item", s.item_name, s.raw_row_index),
                sale_date=s.sale_date,
                quantity=s.quantity,
                unit_price=s.unit_price,
                vat_amount=s.vat,
                purchase_price=s.purchase_price,
                notes=f"엑셀 {s.raw_row_index}행에서 이전",
            )
            return None

        processed = 0
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            self._run_batch(stats, batch, handle, lambda s: f"Sale row {s.raw_row_index}")
            processed += len(batch)
            logger.info("Sales progress: %s/%s (%s%%)", processed, len(rows), _pct(processed, len(rows)))

        logger.info("Sales migrated (%s/%s)", stats.success, stats.total)


def migrate_workbook(
    conn: sqlite3.Connection,
    source: str | BinaryIO,
    *,
    sheet_name: Optional[str] = None,
    layout: str = "auto",
    batch_size: int = DEFAULT_BATCH_SIZE,
    clear_existing: bool = False,
) -> MigrationReport:
    migrator = ExcelMigrator(conn, batch_size=batch_size, clear_existing=clear_existing)
    return migrator.run(source, sheet_name=sheet_name, layout=layout)

