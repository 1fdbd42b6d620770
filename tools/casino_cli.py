#!/usr/bin/env python3
"""
CASINOCORE - Casino CLI

Usage:
    python -m tools.casino_cli balance
    python -m tools.casino_cli spin advanced --wager 20 --count 5
    python -m tools.casino_cli simulate cyber --spins 20000
    python -m tools.casino_cli frequencies egyptian --draws 100000
    python -m tools.casino_cli audit
    python -m tools.casino_cli credit 1000
    python -m tools.casino_cli history --limit 20
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ledger import StateStore, WagerLedger
from ledger.errors import CasinoError
from sim_engine.games.slots import SlotSession
from sim_engine.paytables import VARIANT_IDS, audit_variants, get_variant
from tools.paytable_montecarlo import check_frequencies, simulate_variant

console = Console()


def _open_ledger(args) -> WagerLedger:
    return WagerLedger.load(StateStore(args.db))


def cmd_balance(args):
    ledger = _open_ledger(args)
    console.print(Panel(
        f"Balance: [bold green]{ledger.get_balance():,}[/]\n"
        f"Default wager: {ledger.default_wager}\n"
        f"Last game: {ledger.last_active_game or '-'}",
        title="Casino",
    ))
    ledger.close()


def cmd_credit(args):
    ledger = _open_ledger(args)
    ledger.credit(args.amount, cause="free_credits")
    console.print(f"[green]+{args.amount:,}[/] -> balance {ledger.get_balance():,}")
    ledger.close()


def cmd_spin(args):
    ledger = _open_ledger(args)
    session = SlotSession(ledger, args.variant)
    session.activate()
    table = Table(title=f"{session.display_name} x{args.count}")
    table.add_column("#", justify="right")
    table.add_column("Grid")
    table.add_column("Matches")
    table.add_column("Payout", justify="right")
    table.add_column("Balance", justify="right")
    try:
        for i in range(args.count):
            result = session.spin(args.wager)
            rows = [" ".join(reel[r] for reel in result.grid) for r in range(session.variant.rows)]
            matches = ", ".join(f"{m.line_id} {m.run_length}x{m.symbol_id}" for m in result.matches)
            table.add_row(str(i + 1), "\n".join(rows), matches or "-",
                          f"{result.payout:,}", f"{result.balance:,}")
    except CasinoError as e:
        console.print(f"[red]{e}[/]")
    finally:
        console.print(table)
        ledger.close()


def cmd_simulate(args):
    result = simulate_variant(args.variant, n_spins=args.spins, wager=args.wager, seed=args.seed)
    console.print(result.summary())


def cmd_frequencies(args):
    report = check_frequencies(get_variant(args.variant).paytable,
                               n_draws=args.draws, seed=args.seed)
    table = Table(title=report.summary().splitlines()[0])
    table.add_column("Symbol")
    table.add_column("Expected", justify="right")
    table.add_column("Observed", justify="right")
    table.add_column("Delta", justify="right")
    for s in report.symbols:
        style = "red" if s.delta > report.tolerance else ""
        table.add_row(s.symbol_id, f"{s.expected:.4f}", f"{s.observed:.4f}",
                      f"{s.delta:.4f}", style=style)
    console.print(table)
    console.print(report.summary())


def cmd_audit(args):
    findings = audit_variants()
    if not findings:
        console.print("[green]No inconsistencies across variants[/]")
        return
    table = Table(title="Variant inconsistencies")
    table.add_column("Aspect")
    table.add_column("Detail")
    table.add_column("Variants")
    for f in findings:
        table.add_row(f.aspect, f.detail, ", ".join(f.variants))
    console.print(table)


def cmd_history(args):
    store = StateStore(args.db)
    table = Table(title="Transactions")
    table.add_column("Delta", justify="right")
    table.add_column("Cause")
    table.add_column("Balance", justify="right")
    for tx in store.recent_transactions(args.limit):
        color = "green" if tx.delta >= 0 else "red"
        table.add_row(f"[{color}]{tx.delta:+,}[/]", tx.cause, f"{tx.balance_after:,}")
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Casino ledger and payout engine")
    parser.add_argument("--db", type=str, default=None, help="SQLite path (default: CASINO_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("balance").set_defaults(func=cmd_balance)

    p = sub.add_parser("credit")
    p.add_argument("amount", type=int)
    p.set_defaults(func=cmd_credit)

    p = sub.add_parser("spin")
    p.add_argument("variant", choices=VARIANT_IDS)
    p.add_argument("--wager", type=int, default=None)
    p.add_argument("--count", type=int, default=1)
    p.set_defaults(func=cmd_spin)

    p = sub.add_parser("simulate")
    p.add_argument("variant", choices=VARIANT_IDS)
    p.add_argument("--spins", type=int, default=50_000)
    p.add_argument("--wager", type=int, default=10)
    p.add_argument("--seed", type=int, default=None)
    p.set_defaults(func=cmd_simulate)

    p = sub.add_parser("frequencies")
    p.add_argument("variant", choices=VARIANT_IDS)
    p.add_argument("--draws", type=int, default=None)
    p.add_argument("--seed", type=int, default=None)
    p.set_defaults(func=cmd_frequencies)

    sub.add_parser("audit").set_defaults(func=cmd_audit)

    p = sub.add_parser("history")
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(func=cmd_history)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
