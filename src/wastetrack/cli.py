"""CLI entrypoint for wastetrack."""

import argparse
import json
from pathlib import Path
from typing import List, Optional

from wastetrack.api.export import export_customers, export_payments, export_pickups
from wastetrack.config.loader import get_sqlite_path, load_config, resolve_config
from wastetrack.database.migrate import run_all_migrations
from wastetrack.database.schema import create_all
from wastetrack.database.sqlite_client import store_context
from wastetrack.errors import QueryError, ServiceError
from wastetrack.retrieval.aggregation import get_customer_details
from wastetrack.retrieval.contracts import (
    ComplaintFilters,
    PaginationOptions,
    PaymentFilters,
    PickupRequestFilters,
    SortOptions,
    UserFilters,
)
from wastetrack.retrieval.translator import (
    SEARCH_DATA_TYPES,
    get_complaints,
    get_payments,
    get_pickup_requests,
    get_users,
    global_search,
)
from wastetrack.services.audit_service import purge_audit_logs
from wastetrack.services.notification_service import cleanup_old_notifications
from wastetrack.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _config(args: argparse.Namespace) -> dict:
    if args.config:
        return load_config(Path(args.config))
    return resolve_config()


def _paging(args: argparse.Namespace) -> tuple[PaginationOptions, SortOptions]:
    limit = args.limit if args.limit is not None else args.cfg["pagination"]["default_limit"]
    limit = min(limit, args.cfg["pagination"]["max_limit"])
    pagination = PaginationOptions(page=args.page, limit=limit)
    sort = SortOptions(field=args.sort, direction=args.direction) if args.sort else None
    return pagination, sort


def _print_page(page, columns: List[str], fmt: str) -> None:
    if fmt == "json":
        print(page.model_dump_json(indent=2))
        return
    print("  ".join(f"{col:<20}" for col in columns))
    print("-" * (22 * len(columns)))
    for item in page.data:
        row = item.model_dump(mode="json")
        row.update(row.pop("location", None) or {})
        print("  ".join(f"{str(row.get(col) if row.get(col) is not None else ''):<20}" for col in columns))
    p = page.pagination
    print(f"\nPage {p.page}/{max(p.total_pages, 1)}, {p.total} total")


def cmd_init_db(args: argparse.Namespace) -> None:
    """Create tables and apply additive migrations."""
    sqlite_path = get_sqlite_path(args.cfg)
    create_all(f"sqlite:///{sqlite_path}")
    run_all_migrations(sqlite_path)
    print(f"Database ready: {sqlite_path}")


def cmd_pickups_list(args: argparse.Namespace) -> None:
    pagination, sort = _paging(args)
    filters = PickupRequestFilters(
        user_id=args.user_id,
        collector_id=args.collector_id,
        status=args.status,
        area=args.area,
        search_term=args.search,
    )
    with store_context(get_sqlite_path(args.cfg)) as store:
        page = get_pickup_requests(store, filters, pagination, sort)
    _print_page(page, ["id", "scheduled_date", "status", "area", "street", "collector_id"], args.format)


def cmd_payments_list(args: argparse.Namespace) -> None:
    pagination, sort = _paging(args)
    filters = PaymentFilters(
        user_id=args.user_id,
        status=args.status,
        payment_method=args.method,
        min_amount=args.min_amount,
        max_amount=args.max_amount,
        search_term=args.search,
    )
    with store_context(get_sqlite_path(args.cfg)) as store:
        page = get_payments(store, filters, pagination, sort)
    _print_page(page, ["id", "reference", "amount", "currency", "status", "created_at"], args.format)


def cmd_complaints_list(args: argparse.Namespace) -> None:
    pagination, sort = _paging(args)
    filters = ComplaintFilters(
        user_id=args.user_id,
        pickup_id=args.pickup_id,
        status=args.status,
        priority=args.priority,
        search_term=args.search,
    )
    with store_context(get_sqlite_path(args.cfg)) as store:
        page = get_complaints(store, filters, pagination, sort)
    _print_page(page, ["id", "pickup_id", "status", "priority", "created_at"], args.format)


def cmd_users_list(args: argparse.Namespace) -> None:
    pagination, sort = _paging(args)
    filters = UserFilters(role=args.role, area=args.area, search_term=args.search)
    with store_context(get_sqlite_path(args.cfg)) as store:
        page = get_users(store, filters, pagination, sort)
    _print_page(page, ["id", "name", "role", "phone", "area"], args.format)


def cmd_customers(args: argparse.Namespace) -> None:
    """List a collector's customers with subscription, payment and pickup stats."""
    pagination, sort = _paging(args)
    filters = UserFilters(area=args.area, search_term=args.search)
    with store_context(get_sqlite_path(args.cfg)) as store:
        page = get_customer_details(store, args.collector_id, filters, pagination, sort)
    _print_page(page, ["id", "name", "area", "pickup_count", "completion_rate", "total_payments"], args.format)


def cmd_search(args: argparse.Namespace) -> None:
    with store_context(get_sqlite_path(args.cfg)) as store:
        results = global_search(store, args.term, user_id=args.user_id, data_types=args.types, limit=args.limit)
    if args.format == "json":
        print(results.model_dump_json(indent=2))
        return
    for kind in ("pickups", "payments", "complaints", "users"):
        items = getattr(results, kind)
        print(f"{kind}: {len(items)}")
        for item in items:
            print(f"  {item.id}")


def cmd_export(args: argparse.Namespace) -> None:
    pagination, sort = _paging(args)
    out = Path(args.out) if args.out else None
    with store_context(get_sqlite_path(args.cfg)) as store:
        if args.kind == "payments":
            output = export_payments(store, PaymentFilters(search_term=args.search), pagination, sort, args.format, out)
        elif args.kind == "pickups":
            output = export_pickups(
                store, PickupRequestFilters(search_term=args.search), pagination, sort, args.format, out
            )
        else:
            if not args.collector_id:
                raise SystemExit("--collector-id is required for customer exports")
            output = export_customers(
                store,
                args.collector_id,
                UserFilters(search_term=args.search),
                pagination,
                sort,
                args.format,
                out,
            )
    print(output)


def cmd_cleanup_notifications(args: argparse.Namespace) -> None:
    days = args.days or args.cfg["notifications"]["retention_days"]
    with store_context(get_sqlite_path(args.cfg)) as store:
        removed = cleanup_old_notifications(store, days_old=days)
    print(json.dumps({"deleted": removed, "days_old": days}))


def cmd_purge_audit(args: argparse.Namespace) -> None:
    days = args.days or args.cfg["audit"]["retention_days"]
    with store_context(get_sqlite_path(args.cfg)) as store:
        removed = purge_audit_logs(store, older_than_days=days)
    print(json.dumps({"deleted": removed, "older_than_days": days}))


def _add_paging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    parser.add_argument("--limit", type=int, help="Rows per page (default: from config)")
    parser.add_argument("--sort", type=str, help="Sort field")
    parser.add_argument(
        "--direction",
        type=str,
        choices=["asc", "desc"],
        default="desc",
        help="Sort direction (default: desc)",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wastetrack",
        description="Waste pickup records: list, search, export and maintenance",
    )
    parser.add_argument("--config", type=str, help="Path to wastetrack.config.yaml")
    parser.add_argument("--log-level", type=str, help="Override logging.level from config")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init-db command
    init_parser = subparsers.add_parser("init-db", help="Create tables and run migrations")
    init_parser.set_defaults(func=cmd_init_db)

    # pickups command
    pickups_parser = subparsers.add_parser("pickups", help="Pickup request commands")
    pickups_sub = pickups_parser.add_subparsers(dest="pickups_subcommand", required=True)
    pickups_list = pickups_sub.add_parser("list", help="List pickup requests")
    pickups_list.add_argument("--user-id", type=str)
    pickups_list.add_argument("--collector-id", type=str)
    pickups_list.add_argument(
        "--status", action="append", choices=["requested", "scheduled", "picked_up", "missed"]
    )
    pickups_list.add_argument("--area", type=str)
    pickups_list.add_argument("--search", type=str, help="Free text over address and notes")
    _add_paging_args(pickups_list)
    pickups_list.set_defaults(func=cmd_pickups_list)

    # payments command
    payments_parser = subparsers.add_parser("payments", help="Payment commands")
    payments_sub = payments_parser.add_subparsers(dest="payments_subcommand", required=True)
    payments_list = payments_sub.add_parser("list", help="List payments")
    payments_list.add_argument("--user-id", type=str)
    payments_list.add_argument("--status", action="append", choices=["pending", "completed", "failed"])
    payments_list.add_argument("--method", action="append", choices=["cash", "transfer", "card"])
    payments_list.add_argument("--min-amount", type=float)
    payments_list.add_argument("--max-amount", type=float)
    payments_list.add_argument("--search", type=str, help="Substring of the payment reference")
    _add_paging_args(payments_list)
    payments_list.set_defaults(func=cmd_payments_list)

    # complaints command
    complaints_parser = subparsers.add_parser("complaints", help="Complaint commands")
    complaints_sub = complaints_parser.add_subparsers(dest="complaints_subcommand", required=True)
    complaints_list = complaints_sub.add_parser("list", help="List complaints")
    complaints_list.add_argument("--user-id", type=str)
    complaints_list.add_argument("--pickup-id", type=str)
    complaints_list.add_argument(
        "--status", action="append", choices=["open", "in_progress", "resolved", "closed"]
    )
    complaints_list.add_argument("--priority", action="append", choices=["low", "medium", "high"])
    complaints_list.add_argument("--search", type=str)
    _add_paging_args(complaints_list)
    complaints_list.set_defaults(func=cmd_complaints_list)

    # users command
    users_parser = subparsers.add_parser("users", help="User commands")
    users_sub = users_parser.add_subparsers(dest="users_subcommand", required=True)
    users_list = users_sub.add_parser("list", help="List users")
    users_list.add_argument("--role", action="append", choices=["resident", "collector", "admin"])
    users_list.add_argument("--area", type=str)
    users_list.add_argument("--search", type=str)
    _add_paging_args(users_list)
    users_list.set_defaults(func=cmd_users_list)

    # customers command
    customers_parser = subparsers.add_parser("customers", help="A collector's customers with stats")
    customers_parser.add_argument("collector_id", type=str)
    customers_parser.add_argument("--area", type=str)
    customers_parser.add_argument("--search", type=str)
    _add_paging_args(customers_parser)
    customers_parser.set_defaults(func=cmd_customers)

    # search command
    search_parser = subparsers.add_parser("search", help="Search across entity kinds")
    search_parser.add_argument("term", type=str)
    search_parser.add_argument("--user-id", type=str, help="Scope to one user (users are not searched)")
    search_parser.add_argument(
        "--types",
        nargs="+",
        choices=list(SEARCH_DATA_TYPES),
        default=["pickups", "payments", "complaints"],
    )
    search_parser.add_argument("--limit", type=int, default=10)
    search_parser.add_argument("--format", type=str, choices=["table", "json"], default="table")
    search_parser.set_defaults(func=cmd_search)

    # export command
    export_parser = subparsers.add_parser("export", help="Export a page of records")
    export_parser.add_argument("kind", choices=["payments", "pickups", "customers"])
    export_parser.add_argument("--collector-id", type=str, help="Required for customers")
    export_parser.add_argument("--search", type=str)
    export_parser.add_argument("--page", type=int, default=1)
    export_parser.add_argument("--limit", type=int)
    export_parser.add_argument("--sort", type=str)
    export_parser.add_argument("--direction", type=str, choices=["asc", "desc"], default="desc")
    export_parser.add_argument("--format", type=str, choices=["json", "csv"], default="json")
    export_parser.add_argument("--out", type=str, help="Write to this file instead of stdout")
    export_parser.set_defaults(func=cmd_export)

    # maintenance command
    maintenance_parser = subparsers.add_parser("maintenance", help="Retention jobs")
    maintenance_sub = maintenance_parser.add_subparsers(dest="maintenance_subcommand", required=True)
    cleanup_parser = maintenance_sub.add_parser("cleanup-notifications", help="Delete old notifications")
    cleanup_parser.add_argument("--days", type=int, help="Age threshold (default: notifications.retention_days)")
    cleanup_parser.set_defaults(func=cmd_cleanup_notifications)
    purge_parser = maintenance_sub.add_parser("purge-audit", help="Delete old audit entries")
    purge_parser.add_argument("--days", type=int, help="Age threshold (default: audit.retention_days)")
    purge_parser.set_defaults(func=cmd_purge_audit)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    args.cfg = _config(args)
    configure_logging(args.log_level or args.cfg["logging"]["level"])

    try:
        args.func(args)
    except (QueryError, ServiceError) as e:
        logger.error(f"Error running command '{args.command}': {e}")
        print(f"Error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Error running command '{args.command}': {e}", exc_info=True)
        raise
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
