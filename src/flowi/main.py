from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, timedelta
from typing import Optional, Sequence

from flowi.application.container import AppContainer, build_container
from flowi.config import get_app_paths, load_settings
from flowi.domain.errors import AppError
from flowi.domain.money import format_usd, format_ves
from flowi.logging_config import setup_logging

log = logging.getLogger("flowi")


def _day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from e


def _fmt(amount: float, currency: str) -> str:
    return format_usd(amount) if currency == "USD" else format_ves(amount)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="flowi", description="Flowi Admin sales and receivables")
    ap.add_argument("--db", default=None, help="Path to SQLite DB (defaults to the app data dir)")
    sub = ap.add_subparsers(dest="command", required=True)

    rate = sub.add_parser("rate", help="Exchange rate")
    rate_sub = rate.add_subparsers(dest="action", required=True)
    rate_sub.add_parser("show", help="Print the active USD->VES rate")
    upd = rate_sub.add_parser("update", help="Fetch or set a new rate")
    upd.add_argument("--source", choices=("bcv", "paralelo", "manual"), default=None)
    upd.add_argument("--manual", type=float, default=None, help="Rate for the manual source")

    rec = sub.add_parser("receivables", help="Receivables")
    rec_sub = rec.add_subparsers(dest="action", required=True)
    for name in ("refresh", "outstanding", "aging"):
        p = rec_sub.add_parser(name)
        p.add_argument("--as-of", type=_day, default=None)

    rep = sub.add_parser("report", help="Reports")
    rep_sub = rep.add_subparsers(dest="action", required=True)
    exp = rep_sub.add_parser("export", help="Export an Excel report")
    exp.add_argument("path")
    exp.add_argument("--start", type=_day, default=None)
    exp.add_argument("--end", type=_day, default=None)

    closure = sub.add_parser("closure", help="Daily cash closure")
    closure.add_argument("--day", type=_day, default=None)
    return ap


def _run(c: AppContainer, args: argparse.Namespace) -> None:
    today = date.today()

    if args.command == "rate":
        if args.action == "update":
            rate = c.fx.update_rate(source=args.source, manual_rate=args.manual)
        else:
            rate = c.fx.get_active_rate()
        print(f"1 USD = {format_ves(rate.usd_to_ves)} ({rate.source}, {rate.created_at})")

    elif args.command == "receivables":
        as_of = args.as_of or today
        if args.action == "refresh":
            print(f"{c.receivables.refresh(as_of)} receivable(s) marked overdue")
        elif args.action == "outstanding":
            for currency, total in c.receivables.outstanding().items():
                print(f"{currency}: {_fmt(total, currency)}")
        else:
            for b in c.receivables.aging(as_of):
                print(
                    f"{b.entity_name} [{b.currency}] current={b.current:.2f} 1-30={b.days_30:.2f} "
                    f"31-60={b.days_60:.2f} 61-90={b.days_90:.2f} 90+={b.over_90:.2f} total={b.total:.2f}"
                )

    elif args.command == "report":
        end = args.end or today
        start = args.start or end.replace(day=1)
        c.reporting.export_report_excel(
            args.path,
            start.isoformat(),
            (end + timedelta(days=1)).isoformat(),
            as_of=today,
        )
        print(f"Report written to {args.path}")

    elif args.command == "closure":
        s = c.reporting.daily_summary(args.day or today)
        print(f"Closure {s.day}: {s.sales_count} sale(s), {format_usd(s.total_usd)} / {format_ves(s.total_ves)}")
        for method, (count, usd) in s.by_method.items():
            print(f"  {method}: {count} sale(s), {format_usd(usd)}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    try:
        c = build_container(args.db or paths.db_path, load_settings())
        _run(c, args)
    except AppError as e:
        log.error("command_failed command=%s error=%s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
