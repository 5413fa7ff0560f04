"""Command-line entry point for Profit Watch."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

_REPO_SAMPLE_DIR = Path(__file__).parents[2] / "sample_data"


def _add_data_args(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--config", default=None, help="Path to config.yaml (built-in defaults when omitted)")
    cmd.add_argument("--products", default=None, help="Products CSV export.")
    cmd.add_argument("--tiers", default=None, help="Shipping barem CSV (default: built-in desi barem).")
    cmd.add_argument("--schedules", default=None, help="Commission schedules CSV.")
    cmd.add_argument("--marketplace", default=None, help="Marketplace key (default: first in config).")
    cmd.add_argument("--store-id", default=None, help="Only use rows of this store.")
    cmd.add_argument(
        "--dry-run",
        action="store_true",
        help="Use the bundled sample data instead of --products/--tiers/--schedules.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="profit-watch",
        description="Per-unit profit for marketplace products with campaign commissions and shipping barem.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── calc ───────────────────────────────────────────────────────────────
    calc_cmd = sub.add_parser("calc", help="Resolve and print profit for every product.")
    _add_data_args(calc_cmd)
    calc_cmd.add_argument(
        "--json",
        dest="output_json",
        action="store_true",
        help="Output only machine-readable JSON (suppresses plain-text table).",
    )

    # ── simulate ───────────────────────────────────────────────────────────
    sim_cmd = sub.add_parser("simulate", help="What-if: profit of one product at another price.")
    _add_data_args(sim_cmd)
    sim_cmd.add_argument("--product-id", required=True, help="Product to simulate.")
    sim_cmd.add_argument("--price", required=True, type=float, help="Target sales price.")
    sim_cmd.add_argument("--json", dest="output_json", action="store_true", help="Output JSON only.")

    # ── campaigns ──────────────────────────────────────────────────────────
    camp_cmd = sub.add_parser("campaigns", help="List active, upcoming and recently expired campaigns.")
    _add_data_args(camp_cmd)
    camp_cmd.add_argument("--json", dest="output_json", action="store_true", help="Output JSON only.")

    # ── report ─────────────────────────────────────────────────────────────
    rep_cmd = sub.add_parser("report", help="Write CSV, JSON and Markdown profit reports.")
    _add_data_args(rep_cmd)
    rep_cmd.add_argument("--reports-dir", default=None, help="Override storage.reports_dir.")

    return parser


# ---------------------------------------------------------------------------
# Shared setup
# ---------------------------------------------------------------------------

def _load_cfg(args: argparse.Namespace):
    from .config import AppConfig, ConfigError, load_config

    if args.config is None:
        return AppConfig()
    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(f"[ERROR] Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    logging.getLogger().setLevel(getattr(logging, cfg.runtime.log_level.upper(), logging.INFO))
    return cfg


def _sample_dir(cfg) -> Path:
    configured = Path(cfg.storage.sample_data_dir)
    return configured if configured.exists() else _REPO_SAMPLE_DIR


def _load_data(args: argparse.Namespace, cfg, require_products: bool = True):
    """Return the Dataset for the command, exiting 2 on unreadable input and 1 on no products."""
    from .loaders import load_dataset, load_tables

    marketplace = args.marketplace or cfg.default_marketplace
    store_id = args.store_id or cfg.store_id

    try:
        if args.dry_run:
            logger.info("Dry-run mode: loading sample data from %s", _sample_dir(cfg))
            data = load_dataset(_sample_dir(cfg), marketplace, store_id=store_id)
        elif args.products:
            data = load_tables(
                args.products,
                marketplace,
                tiers_path=args.tiers,
                schedules_path=args.schedules,
                store_id=store_id,
            )
        else:
            print("[ERROR] --products is required unless --dry-run is given.", file=sys.stderr)
            sys.exit(2)
    except FileNotFoundError as exc:
        print(f"[ERROR] Cannot read input: {exc}", file=sys.stderr)
        sys.exit(2)
    except ValueError as exc:
        print(f"[ERROR] Invalid input file: {exc}", file=sys.stderr)
        sys.exit(2)

    if require_products and not data.products:
        print(f"No products found for marketplace {data.marketplace!r}.", file=sys.stderr)
        sys.exit(1)
    return data


def _views(data):
    from .views import ProfitBook

    book = ProfitBook(data.marketplace, data.products, data.tiers, data.schedules)
    return book.views()


# ---------------------------------------------------------------------------
# Sub-command implementations
# ---------------------------------------------------------------------------

def _cmd_calc(args: argparse.Namespace) -> None:
    """Resolve and print profit for every product."""
    cfg = _load_cfg(args)
    data = _load_data(args, cfg)
    views = _views(data)

    records = [v.as_dict() for v in views]
    if args.output_json:
        print(json.dumps(records, indent=2, ensure_ascii=False))
        return

    SEP = "-" * 96
    print(SEP)
    print(f"  {'Product':<28} {'Price':>10} {'Comm.':>8} {'Ship':>8} {'Net':>10} {'Margin':>8} {'ROI':>8}  Campaign")
    print(SEP)
    for v in views:
        r = v.profit
        name = v.product.name[:27] + ("!" if r.is_loss else "")
        campaign = v.commission.campaign_name or ""
        print(
            f"  {name:<28} {r.sales_price:>10.2f} {r.commission:>8.2f} {r.shipping_cost:>8.2f} "
            f"{r.net_profit:>10.2f} {r.margin:>7.1f}% {r.roi:>7.1f}%  {campaign}"
        )
    print(SEP)

    from .analytics import dashboard_stats

    stats = dashboard_stats(views)
    print(
        f"  {stats.product_count} product(s)  revenue {stats.total_revenue:.2f}  "
        f"profit {stats.total_profit:.2f}  avg margin {stats.avg_margin:.1f}%  "
        f"loss-making {stats.loss_count}"
    )


def _cmd_simulate(args: argparse.Namespace) -> None:
    """Profit of one product at --price versus its current price."""
    from .calculator import break_even_price
    from .scenario import simulate_price_change

    cfg = _load_cfg(args)
    data = _load_data(args, cfg)
    view = next((v for v in _views(data) if v.product.id == args.product_id), None)
    if view is None:
        print(f"No product with id {args.product_id!r}.", file=sys.stderr)
        sys.exit(1)

    result = simulate_price_change(view.profit_input, args.price)
    payload = result.as_dict()
    payload["breakEvenPrice"] = break_even_price(view.profit_input)

    if args.output_json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    cur, sim = result.current, result.simulated
    print(f"  {view.product.name} ({view.product.id})")
    print(f"  Price      : {cur.sales_price:.2f} -> {sim.sales_price:.2f}")
    print(f"  Net profit : {cur.net_profit:.2f} -> {sim.net_profit:.2f}  ({result.profit_delta:+.2f})")
    print(f"  Margin     : {cur.margin:.1f}% -> {sim.margin:.1f}%  ({result.margin_delta:+.1f} pts)")
    be = payload["breakEvenPrice"]
    print(f"  Break-even : {be:.2f}" if be is not None else "  Break-even : none")


def _cmd_campaigns(args: argparse.Namespace) -> None:
    """List active, upcoming and recently expired campaigns."""
    from .commission import partition_schedules, time_remaining
    from .normalize import utc_now

    cfg = _load_cfg(args)
    data = _load_data(args, cfg, require_products=False)
    now = utc_now()
    parts = partition_schedules(
        data.schedules, now, expired_window=timedelta(days=cfg.engine.expired_window_days)
    )

    if args.output_json:
        print(json.dumps(
            {
                "active": [s.as_row() for s in parts.active],
                "upcoming": [s.as_row() for s in parts.upcoming],
                "recentlyExpired": [s.as_row() for s in parts.recently_expired],
            },
            indent=2,
            ensure_ascii=False,
        ))
        return

    def scope(s) -> str:
        return "all products" if s.is_store_wide else f"product {s.product_id}"

    print("Active:")
    for s in parts.active:
        left = time_remaining(s, now)
        print(f"  {s.campaign_name} {s.campaign_rate:.2%} ({scope(s)}), ends in {str(left).split('.')[0]}")
    print("Upcoming:")
    for s in parts.upcoming:
        print(f"  {s.campaign_name} {s.campaign_rate:.2%} ({scope(s)}), starts {s.valid_from.isoformat()}")
    print(f"Expired (last {cfg.engine.expired_window_days} days):")
    for s in parts.recently_expired:
        print(f"  {s.campaign_name} {s.campaign_rate:.2%} ({scope(s)}), ended {s.valid_until.isoformat()}")


def _cmd_report(args: argparse.Namespace) -> None:
    """Write CSV, JSON and Markdown profit reports."""
    from .report import write_reports

    cfg = _load_cfg(args)
    data = _load_data(args, cfg)
    views = _views(data)

    try:
        _, _, _, summary = write_reports(
            views,
            reports_dir=args.reports_dir or cfg.storage.reports_dir,
            marketplace=data.marketplace,
            timezone_str=cfg.runtime.timezone,
        )
    except OSError as exc:
        print(f"[ERROR] Report generation failed: {exc}", file=sys.stderr)
        sys.exit(4)

    print(summary)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

_COMMANDS = {
    "calc": _cmd_calc,
    "simulate": _cmd_simulate,
    "campaigns": _cmd_campaigns,
    "report": _cmd_report,
}


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    parser = _build_parser()
    args = parser.parse_args(argv)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(0)

    handler(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
