from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Optional, Sequence

from suiviventes.application.container import AppContainer, build_container
from suiviventes.config import get_app_paths, get_remote_settings
from suiviventes.domain.errors import AppError
from suiviventes.domain.models import DashboardFilters, ImportPreview, SaleFilters
from suiviventes.logging_config import setup_logging
from suiviventes.services.reporting_service import format_currency

log = logging.getLogger("suiviventes.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="suiviventes", description="Suivi des ventes et du stock")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("login", "signup"):
        p = sub.add_parser(name, help=f"{name} against the hosted backend")
        p.add_argument("email")
        p.add_argument("--password", help="prompted when omitted")
    sub.add_parser("logout", help="drop the stored session")

    for name, label in (("import-sales", "sales"), ("import-stock", "stock items")):
        p = sub.add_parser(name, help=f"preview (and optionally commit) imported {label}")
        p.add_argument("file", help=".xlsx or .csv file")
        p.add_argument("--commit", action="store_true", help="persist the rows kept by the preview")
        p.add_argument("--keep-duplicates", action="store_true", help="also import rows flagged as duplicates")

    p = sub.add_parser("export", help="export sales to a ZIP archive")
    p.add_argument("--format", choices=("csv", "json", "excel"), default="csv")
    p.add_argument("--out", help="target directory (defaults to the app exports dir)")
    p.add_argument("--from", dest="start_date", default="")
    p.add_argument("--to", dest="end_date", default="")
    p.add_argument("--client", default="")
    p.add_argument("--product", default="")
    p.add_argument("--min-amount", default="")
    p.add_argument("--max-amount", default="")

    p = sub.add_parser("stats", help="dashboard figures")
    p.add_argument("--from", dest="start_date", default="")
    p.add_argument("--to", dest="end_date", default="")
    p.add_argument("--seller", default="")
    p.add_argument("--register", default="")
    p.add_argument("--category", default="")
    p.add_argument("--product", default="")

    sub.add_parser("low-stock", help="items at or under their alert threshold")
    sub.add_parser("migrate", help="copy local data to the hosted backend (once)")
    sub.add_parser("status", help="show the active backend and flags")

    p = sub.add_parser("read-only", help="toggle read-only mode")
    p.add_argument("state", choices=("on", "off"))
    return parser


def _print_preview(preview: ImportPreview) -> None:
    print(f"Rows: {preview.total_rows}  quantity: {preview.total_quantity:g}  duplicates: {preview.duplicates_count}")
    if preview.total_amount is not None:
        print(f"Amount: {format_currency(preview.total_amount)}")
    for err in preview.invalid_rows:
        print(f"  row {err.row}: {', '.join(err.errors)}")


def _run_import(c: AppContainer, args) -> int:
    preview = c.excel.preview_sales(args.file) if args.command == "import-sales" else c.excel.preview_stock(args.file)
    if args.keep_duplicates:
        for i, info in enumerate(preview.data):
            if info.is_duplicate and not info.should_keep:
                preview.toggle_keep(i)
    _print_preview(preview)
    if not args.commit:
        return 0 if preview.can_commit else 2

    outcome = c.excel.commit(preview)
    print(f"Imported: {outcome.imported}")
    if outcome.reconciliation is not None:
        for w in outcome.reconciliation.unmatched:
            print(f"  no stock item for {w.product_name!r} ({w.sales_count} sale(s), qty {w.quantity})")
    return 0


def run(args, c: AppContainer, exports_dir) -> int:
    cmd = args.command
    if cmd in ("login", "signup"):
        password = args.password or getpass.getpass("Password: ")
        if cmd == "login":
            session = c.auth.sign_in(args.email, password)
            print(f"Signed in as {session.email or args.email}")
            if c.storage.migrate_local_to_remote():
                print("Local data copied to the hosted backend.")
        else:
            session = c.auth.sign_up(args.email, password)
            print("Account created." if session else "Account created; confirm your email before signing in.")
        return 0
    if cmd == "logout":
        c.auth.sign_out()
        return 0
    if cmd in ("import-sales", "import-stock"):
        return _run_import(c, args)
    if cmd == "export":
        filters = SaleFilters(
            start_date=args.start_date,
            end_date=args.end_date,
            client_name=args.client,
            product_name=args.product,
            min_amount=args.min_amount,
            max_amount=args.max_amount,
        )
        sales = c.sales.list_sales(filters)
        target = c.reporting.export_sales(sales, filters, args.format, args.out or exports_dir)
        print(str(target))
        return 0
    if cmd == "stats":
        stats = c.reporting.dashboard(
            DashboardFilters(
                start_date=args.start_date,
                end_date=args.end_date,
                seller=args.seller,
                register=args.register,
                category=args.category,
                product=args.product,
            )
        )
        print(f"Sales: {stats.total_sales}")
        print(f"Revenue: {format_currency(stats.total_revenue)}")
        print(f"Average: {format_currency(stats.average_sale_value)}")
        print(f"Quantity sold: {stats.total_quantity}")
        print(f"Units in stock: {stats.current_stock}")
        for p in stats.top_products:
            print(f"  {p.name}: {format_currency(p.amount)}")
        return 0
    if cmd == "low-stock":
        for item in c.inventory.low_stock_items():
            print(f"{item.name}: {item.current_stock} (threshold {item.alert_threshold})")
        return 0
    if cmd == "migrate":
        ran = c.storage.migrate_local_to_remote()
        print("Migration completed." if ran else "Nothing to migrate.")
        return 0
    if cmd == "status":
        for key, value in c.storage.status().items():
            print(f"{key}: {value}")
        return 0
    if cmd == "read-only":
        c.storage.set_read_only(args.state == "on")
        return 0
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    container = build_container(paths.db_path, get_remote_settings())
    try:
        if not container.storage.is_read_only():
            container.storage.initialize_storage()
        return run(args, container, paths.exports_dir)
    except AppError as e:
        log.warning("command_failed command=%s error=%s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
