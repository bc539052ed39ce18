#!/usr/bin/env python3
"""
Operator CLI for the CTRU engine.

Usage:
  python3 scripts/recalculate_ctru.py recalculate [--wait]
  python3 scripts/recalculate_ctru.py product-cost PRODUCT_ID
  python3 scripts/recalculate_ctru.py top-products [--limit N]
  python3 scripts/recalculate_ctru.py margin PRICE UNIT_ID [UNIT_ID ...] [--sale-id ID]

Global options (before the command):
  --config PATH        configuration YAML (default: $CTRU_CONFIG_FILE or
                       ctru_config/sets/default.yaml)
  --database-url URL   overrides the configured database
  --create-tables      create missing tables before running

Output is JSON on stdout.  Exit code 0 on success or a no-op recalculation,
1 when the recalculation failed ("0 units updated, error: <cause>").
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from ctru_config import get_active_config  # noqa: E402
from ctru_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url  # noqa: E402
from ctru_kernel.exceptions import CtruKernelError  # noqa: E402
from ctru_kernel.logging_config import configure_logging  # noqa: E402
from ctru_services.engine import CtruEngine  # noqa: E402


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="CTRU unit cost allocation engine")
    p.add_argument("--config", type=Path, default=None, help="Configuration YAML file")
    p.add_argument("--database-url", default=None, help="SQLAlchemy database URL")
    p.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running",
    )
    sub = p.add_subparsers(dest="command", required=True)

    recalc = sub.add_parser("recalculate", help="Prorate pending shared expenses now")
    recalc.add_argument(
        "--wait",
        action="store_true",
        help="Wait for a recalculation already in progress instead of failing",
    )

    cost = sub.add_parser("product-cost", help="Cached cost aggregate of a product")
    cost.add_argument("product_id")

    top = sub.add_parser("top-products", help="Products with the highest average cost")
    top.add_argument("--limit", type=int, default=10)

    margin = sub.add_parser("margin", help="Gross margin of a sale")
    margin.add_argument("sale_price")
    margin.add_argument("unit_ids", nargs="+")
    margin.add_argument("--sale-id", default=None, help="Also subtract this sale's direct expenses")

    return p.parse_args(argv)


def _fmt(value, places: int) -> str:
    return str(round(value, places))


def _summary_dict(summary, places: int) -> dict:
    return {
        "productId": summary.product_id,
        "average": _fmt(summary.average_cost, places),
        "min": _fmt(summary.min_cost, places),
        "max": _fmt(summary.max_cost, places),
        "activeUnitCount": summary.active_unit_count,
        "refreshedAt": summary.refreshed_at.isoformat() if summary.refreshed_at else None,
    }


def run(args: argparse.Namespace, engine: CtruEngine) -> int:
    places = engine.config.presentation_decimal_places

    if args.command == "recalculate":
        result = engine.try_recalculate(wait=args.wait)
        payload = result.as_dict()
        payload["status"] = result.status.value
        payload["message"] = result.describe()
        if result.error is not None:
            payload["error"] = result.error
        print(json.dumps(payload))
        return 0 if result.succeeded else 1

    if args.command == "product-cost":
        print(json.dumps(_summary_dict(engine.get_product_cost(args.product_id), places)))
        return 0

    if args.command == "top-products":
        rows = engine.top_products_by_cost(args.limit)
        print(json.dumps([_summary_dict(r, places) for r in rows]))
        return 0

    if args.command == "margin":
        if args.sale_id:
            result = engine.compute_sale_margin(args.sale_id, args.sale_price, args.unit_ids)
        else:
            result = engine.compute_margin(args.sale_price, args.unit_ids)
        print(json.dumps(result.as_dict(places)))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = get_active_config(args.config)
    except CtruKernelError as exc:
        print(json.dumps({"error": str(exc), "code": exc.code}), file=sys.stderr)
        return 1

    configure_logging(level=config.log_level)
    database_url = args.database_url or config.database_url
    if not database_url:
        print(json.dumps({"error": "no database configured"}), file=sys.stderr)
        return 1
    init_engine_from_url(database_url)
    if args.create_tables:
        create_tables()

    engine = CtruEngine(config, session_factory=get_session_factory())
    try:
        return run(args, engine)
    except CtruKernelError as exc:
        print(json.dumps({"error": str(exc), "code": exc.code}), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
