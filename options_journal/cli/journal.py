"""
CLI: Options trade journal
==========================

Usage:
    python -m options_journal.cli.journal init-db
    python -m options_journal.cli.journal open --file ticket.json
    python -m options_journal.cli.journal validate --file ticket.yaml
    python -m options_journal.cli.journal close <ID> --exit-price 0.30
    python -m options_journal.cli.journal roll <ID> --file roll.json
    python -m options_journal.cli.journal list --status Open
    python -m options_journal.cli.journal show <ID>
    python -m options_journal.cli.journal ledger <ID>
    python -m options_journal.cli.journal stats
    python -m options_journal.cli.journal summary month
    python -m options_journal.cli.journal quotes <ID> --quotes-file quotes.json

Ticket file (JSON or YAML):
    {
      "symbol": "SPY", "broker": "Fidelity", "strategy": "Put Credit Spread",
      "legs": [
        {"action": "STO", "optionType": "Put", "strike": 100, "expiration": "2026-03-20", "premium": 1.20},
        {"action": "BTO", "optionType": "Put", "strike": 95,  "expiration": "2026-03-20", "premium": 0.60}
      ]
    }

Roll file:
    {"rollOutCost": 1.25, "adjustment": {"amount": 1.80, "type": "credit"}, "legs": [...]}
"""

import argparse
import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from tabulate import tabulate

import options_journal.core.models.domain as dm
from options_journal.config.settings import setup_logging
from options_journal.core.database.session import init_database, session_scope
from options_journal.core.exceptions import PositionError
from options_journal.services.performance_service import PerformanceService
from options_journal.services.position_service import PositionService
from options_journal.services.quotes import LiveQuoteService, StaticQuoteGateway


# ============================================================================
# Formatting
# ============================================================================

def format_currency(value: Optional[Decimal]) -> str:
    if value is None:
        return "-"
    return f"${float(value):,.2f}"


def rich_table(data: List[List[Any]], headers: List[str], title: str = None) -> str:
    table = tabulate(data, headers=headers, tablefmt="rounded_grid", numalign="right", stralign="left")
    if title:
        return f"\n{title}\n{table}"
    return table


def position_row(p: dm.Position) -> List[Any]:
    return [
        p.id[:8],
        p.symbol,
        p.strategy or p.type.value,
        p.status.value + (" (archived)" if p.archived else ""),
        format_currency(p.total_cost),
        format_currency(p.realized_pnl),
        p.open_date.strftime('%Y-%m-%d') if p.open_date else "-",
        p.close_date.strftime('%Y-%m-%d') if p.close_date else "-",
    ]


POSITION_HEADERS = ["ID", "Symbol", "Strategy", "Status", "Total Cost", "Realized", "Opened", "Closed"]


def print_position(p: dm.Position) -> None:
    print(rich_table([position_row(p)], POSITION_HEADERS, title=f"Position {p.id}"))
    if p.legs:
        rows = [
            [leg.action.value, leg.option_type.value, leg.strike, leg.expiration.isoformat(),
             leg.premium, leg.quantity, leg.exit_price if leg.exit_price is not None else "-"]
            for leg in p.legs
        ]
        print(rich_table(rows, ["Action", "Type", "Strike", "Expiration", "Premium", "Qty", "Exit"], title="Legs"))
    metrics = [
        ["Net premium", format_currency(p.net_premium)],
        ["Max profit", format_currency(p.max_profit)],
        ["Max loss", format_currency(p.max_loss)],
        ["Break-even low", p.break_even_low if p.break_even_low is not None else "-"],
        ["Break-even high", p.break_even_high if p.break_even_high is not None else "-"],
        ["Cumulative realized", format_currency(p.cumulative_realized_pnl)],
        ["Roll group", p.roll_group_id or "-"],
        ["Rolled from", p.rolled_from or "-"],
    ]
    print(rich_table(metrics, ["Metric", "Value"]))


# ============================================================================
# Input
# ============================================================================

def load_payload_file(filepath: str) -> Dict[str, Any]:
    """Load a JSON or YAML file (by extension) into a dict."""
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    with open(path, 'r') as f:
        if path.suffix.lower() in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{filepath} must contain an object")
    return data


# ============================================================================
# Commands
# ============================================================================

def cmd_init_db(args) -> int:
    init_database()
    print("Database tables created")
    return 0


def cmd_open(args) -> int:
    payload = load_payload_file(args.file)
    with session_scope() as session:
        position = PositionService(session).create(payload)
        print_position(position)
    return 0


def cmd_validate(args) -> int:
    payload = load_payload_file(args.file)
    with session_scope() as session:
        violation = PositionService(session).precheck(
            payload.get('strategy', ''), payload.get('legs') or [], args.allow_close
        )
    if violation:
        print(f"{violation.rule}: {violation.message}")
        return 1
    print("OK")
    return 0


def cmd_close(args) -> int:
    with session_scope() as session:
        position = PositionService(session).close(args.id, args.exit_price)
        print_position(position)
    return 0


def cmd_roll(args) -> int:
    payload = load_payload_file(args.file)
    with session_scope() as session:
        result = PositionService(session).roll(
            args.id,
            payload.get('legs') or [],
            payload.get('rollOutCost', payload.get('roll_out_cost')),
            adjustment=payload.get('adjustment'),
            roll_in_credit=payload.get('rollInCredit', payload.get('roll_in_credit')),
        )
        print(rich_table(
            [position_row(result.old_position), position_row(result.new_position)],
            POSITION_HEADERS,
            title=f"Roll group {result.roll_group_id}",
        ))
    return 0


def cmd_archive(args) -> int:
    with session_scope() as session:
        service = PositionService(session)
        position = service.unarchive(args.id) if args.command == 'unarchive' else service.archive(args.id)
        print(rich_table([position_row(position)], POSITION_HEADERS))
    return 0


def cmd_delete(args) -> int:
    with session_scope() as session:
        PositionService(session).delete(args.id)
    print(f"Deleted {args.id}")
    return 0


def cmd_list(args) -> int:
    with session_scope() as session:
        positions = PositionService(session).list(
            status=args.status,
            archived=args.archived,
            symbol=args.symbol,
            strategy=args.strategy,
            broker=args.broker,
        )
        if not positions:
            print("No positions")
            return 0
        print(rich_table([position_row(p) for p in positions], POSITION_HEADERS))
    return 0


def cmd_show(args) -> int:
    with session_scope() as session:
        service = PositionService(session)
        print_position(service.get(args.id))
        chain = service.roll_chain(args.id)
        if len(chain) > 1:
            print(rich_table([position_row(p) for p in chain], POSITION_HEADERS, title="Roll chain"))
    return 0


def cmd_ledger(args) -> int:
    with session_scope() as session:
        service = PositionService(session)
        service.get(args.id)
        entries = service.ledger.entries_for(args.id)
        rows = [
            [e.date.strftime('%Y-%m-%d %H:%M'), e.type.value, format_currency(e.amount),
             (e.roll_group_id or '-')[:8], e.description]
            for e in entries
        ]
        print(rich_table(rows, ["Date", "Type", "Amount", "Group", "Description"], title=f"Ledger {args.id}"))
        report = service.reconcile(args.id)
        print(f"Ledger total: {format_currency(report.ledger_total)}  "
              f"Stored realized: {format_currency(report.stored_realized_pnl)}  "
              f"In sync: {report.in_sync}")
    return 0


def cmd_stats(args) -> int:
    with session_scope() as session:
        stats = PerformanceService(session).stats(symbol=args.symbol, strategy=args.strategy)
    print(rich_table(
        [stats.to_summary_row()],
        ["Positions", "Net Profit", "Win Rate", "Avg P&L", "Avg Win", "Avg Loss"],
        title="Closed positions",
    ))
    return 0


def cmd_summary(args) -> int:
    with session_scope() as session:
        svc = PerformanceService(session)
        if args.by == 'open':
            rows = [[s.strategy, s.symbol, s.count, format_currency(s.net_premium)] for s in svc.open_summary()]
            print(rich_table(rows, ["Strategy", "Symbol", "Count", "Net Premium"], title="Open positions"))
            return 0

        if args.by == 'month':
            groups = svc.summary_by_month()
        elif args.by == 'symbol':
            groups = svc.summary_by_symbol()
        else:
            groups = svc.summary_by_strategy()
        rows = [[g.key, g.count, format_currency(g.net), format_currency(g.avg)] for g in groups]
        print(rich_table(rows, [args.by.title(), "Count", "Net", "Avg"], title=f"Closed by {args.by}"))
    return 0


def cmd_quotes(args) -> int:
    if not args.quotes_file:
        print("ERROR: no quote source configured; pass --quotes-file")
        return 1
    gateway = StaticQuoteGateway(load_payload_file(args.quotes_file))
    with session_scope() as session:
        rows = []
        for q in LiveQuoteService(session, gateway).quotes_for_position(args.id):
            rows.append([q.occ_symbol, q.quote.last, q.quote.bid, q.quote.ask, q.quote.mid, q.error or ""])
    print(rich_table(rows, ["OCC", "Last", "Bid", "Ask", "Mid", "Error"]))
    return 0


COMMANDS = {
    'init-db': cmd_init_db,
    'open': cmd_open,
    'validate': cmd_validate,
    'close': cmd_close,
    'roll': cmd_roll,
    'archive': cmd_archive,
    'unarchive': cmd_archive,
    'delete': cmd_delete,
    'list': cmd_list,
    'show': cmd_show,
    'ledger': cmd_ledger,
    'stats': cmd_stats,
    'summary': cmd_summary,
    'quotes': cmd_quotes,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Options trade journal with a cash flow ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('init-db', help='Create database tables')

    open_parser = subparsers.add_parser('open', help='Open a position from a ticket file')
    open_parser.add_argument('--file', required=True, help='JSON or YAML ticket')

    validate_parser = subparsers.add_parser('validate', help='Check a ticket without saving')
    validate_parser.add_argument('--file', required=True, help='JSON or YAML ticket')
    validate_parser.add_argument('--allow-close', action='store_true', help='Accept closing leg actions')

    close_parser = subparsers.add_parser('close', help='Close an open position')
    close_parser.add_argument('id')
    close_parser.add_argument('--exit-price', required=True, help='Per-contract (or per-share) exit price')

    roll_parser = subparsers.add_parser('roll', help='Roll an open position into new legs')
    roll_parser.add_argument('id')
    roll_parser.add_argument('--file', required=True, help='JSON or YAML roll ticket')

    for name, help_text in (
        ('archive', 'Hide a position'),
        ('unarchive', 'Unhide a position'),
        ('delete', 'Hard delete a position'),
        ('show', 'Show a position and its roll chain'),
        ('ledger', 'Show ledger entries and reconcile'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('id')

    list_parser = subparsers.add_parser('list', help='List positions')
    list_parser.add_argument('--status', choices=[s.value for s in dm.PositionStatus])
    list_parser.add_argument('--archived', action='store_true', default=None, help='Only archived positions')
    list_parser.add_argument('--symbol')
    list_parser.add_argument('--strategy')
    list_parser.add_argument('--broker')

    stats_parser = subparsers.add_parser('stats', help='Closed-position statistics')
    stats_parser.add_argument('--symbol')
    stats_parser.add_argument('--strategy')

    summary_parser = subparsers.add_parser('summary', help='Grouped P&L summaries')
    summary_parser.add_argument('by', choices=['strategy', 'symbol', 'month', 'open'])

    quotes_parser = subparsers.add_parser('quotes', help='Quotes for each leg of a position')
    quotes_parser.add_argument('id')
    quotes_parser.add_argument('--quotes-file', help='JSON or YAML map of OCC symbol to quote')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    setup_logging()

    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args)
    except PositionError as e:
        print(f"{e.code}: {e.message}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
