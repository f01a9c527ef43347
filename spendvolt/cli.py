"""CLI entry point for SpendVolt.

Commands:
    spendvolt login USERNAME             Log in and fetch the dashboard
    spendvolt logout                     Clear the session and cached transactions
    spendvolt status                     Budget, spend and pace for this month
    spendvolt sync                       Fetch the dashboard and merge it
    spendvolt scan URL                   Record a pending payment and open the payment app
    spendvolt confirm ID [--amount N]    Mark a pending payment successful
    spendvolt reject ID                  Mark a pending payment failed
    spendvolt delete ID                  Delete a transaction
    spendvolt add MERCHANT AMOUNT        Record a completed payment
    spendvolt pending                    List payments awaiting confirmation
    spendvolt history                    List recent transactions
    spendvolt insights [--period P]      Spending by category
    spendvolt category list|add|delete|set
    spendvolt recurring list|add|delete
    spendvolt profile show|set
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from datetime import datetime

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on SPENDVOLT_LOG_LEVEL env var."""
    level = os.environ.get("SPENDVOLT_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config from config directory."""
    from spendvolt.config import Config

    config_dir = os.environ.get("SPENDVOLT_CONFIG_DIR", "config")
    return Config(config_dir=config_dir)


def _get_cache(config):
    """Open the local cache at the configured path."""
    from spendvolt.storage.cache import CacheStore

    db_path = os.environ.get("SPENDVOLT_DB_PATH", "spendvolt.db")
    return CacheStore.open(
        db_path,
        default_categories=config.default_categories,
        default_profile=config.default_profile,
    )


def _get_gateway(config):
    from spendvolt.gateway.client import BackendGateway

    base_url = os.environ.get("SPENDVOLT_API_URL") or config.api_base_url
    return BackendGateway(base_url, timeout=config.timeout)


def _get_app(sync_on_start: bool = False):
    """Build the app facade with an inline dispatcher for one-shot commands."""
    from spendvolt.app import SpendVoltApp
    from spendvolt.parsers.launcher import PaymentLauncher

    config = _get_config()
    return SpendVoltApp(
        _get_cache(config),
        _get_gateway(config),
        launcher=PaymentLauncher(apps=config.payment_apps or None),
        sync_on_start=sync_on_start,
    )


def _parse_day(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got '{value}'") from None


def _money(app, amount: float) -> str:
    return f"{app.state.profile.currency.symbol}{amount:,.2f}"


def _report_remote(app) -> None:
    """Print a backend failure recorded during the command, if any."""
    message = app.state.error_message
    if message:
        print(f"Warning: {message} (saved locally)")


def _print_transactions(app, transactions) -> None:
    for t in transactions:
        print(
            f"  {str(t.id):<38}  {t.date:%Y-%m-%d %H:%M}  {_money(app, t.amount):>12}"
            f"  {t.status.value:<8}  {t.category_name:<12}  {t.merchant_name[:30]}"
        )


# ── Session ──────────────────────────────────────────────


def cmd_login(args: argparse.Namespace) -> int:
    app = _get_app()
    password = args.password or getpass.getpass("Password: ")
    app.login(args.username, password)
    if not app.state.is_authenticated:
        print(f"Error: {app.state.error_message or 'Login failed.'}")
        app.close()
        return 1
    print(f"Logged in as {args.username}. {len(app.state.transactions)} transaction(s) this month.")
    app.close()
    return 0


def cmd_logout(args: argparse.Namespace) -> int:
    app = _get_app()
    app.logout()
    print("Logged out.")
    app.close()
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Display this month's budget summary."""
    app = _get_app()
    state = app.state
    insight = state.daily_insight
    pace = "over" if insight.is_over_pace else "under"

    print("SpendVolt Status")
    print("=" * 40)
    print(f"  Logged in:           {'yes' if state.is_authenticated else 'no'}")
    print(f"  Monthly budget:      {_money(app, state.profile.monthly_budget)}")
    print(f"  Spent this month:    {_money(app, state.total_spent_this_month)}")
    print(f"  Budget status:       {app.budget_status().value}")
    print(f"  Safe to spend today: {_money(app, insight.allowance)}")
    print(f"  Pace:                {_money(app, insight.pace_difference)}/day {pace} budget")
    print(f"  Pending payments:    {len(state.pending_transactions)}")

    if state.top_three_spends:
        print("\n  Top spends:")
        for t in state.top_three_spends:
            print(f"    {_money(app, t.amount):>12}  {t.merchant_name}")
    app.close()
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    app = _get_app()
    if not app.sync():
        print("Error: Not logged in.")
        app.close()
        return 1
    if app.state.error_message:
        print(f"Error: {app.state.error_message}")
        app.close()
        return 1
    print(f"Synced. {len(app.state.transactions)} transaction(s).")
    app.close()
    return 0


# ── Transactions ─────────────────────────────────────────


def cmd_scan(args: argparse.Namespace) -> int:
    """Parse a scanned UPI URL and start the payment."""
    app = _get_app()
    payment = app.scan(args.url)
    print(f"Payee:   {payment.payee_name} ({payment.payee_address})")
    print(f"Type:    {payment.qr_type.value}")

    amount = args.amount if args.amount is not None else payment.amount
    txn_id = app.initiate_payment(
        args.merchant or payment.payee_name,
        amount,
        args.category,
        payment.raw_url,
        args.app,
        launch=not args.no_launch,
    )
    print(f"Pending: {txn_id}")
    print(f"Run 'spendvolt confirm {txn_id}' once the payment completes.")
    app.close()
    return 0


def cmd_confirm(args: argparse.Namespace) -> int:
    app = _get_app()
    txn = app.confirm_transaction(args.id, args.amount)
    print(f"Confirmed {txn.merchant_name}: {_money(app, txn.amount)}")
    _report_remote(app)
    app.close()
    return 0


def cmd_reject(args: argparse.Namespace) -> int:
    app = _get_app()
    txn = app.reject_transaction(args.id)
    print(f"Marked {txn.merchant_name} as failed.")
    _report_remote(app)
    app.close()
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    app = _get_app()
    app.delete_transaction(args.id)
    print(f"Deleted {args.id}.")
    _report_remote(app)
    app.close()
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    app = _get_app()
    txn = app.add_manual_transaction(args.merchant, args.amount, args.category, args.date)
    print(f"Added {txn.merchant_name}: {_money(app, txn.amount)} ({txn.id})")
    _report_remote(app)
    app.close()
    return 0


def cmd_pending(args: argparse.Namespace) -> int:
    app = _get_app()
    pending = app.pending_transactions
    if not pending:
        print("No payments awaiting confirmation.")
        app.close()
        return 0
    print(f"Awaiting confirmation ({len(pending)}):")
    print("-" * 80)
    _print_transactions(app, pending)
    app.close()
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    app = _get_app()
    transactions = app.state.transactions[:args.limit]
    if not transactions:
        print("No transactions.")
        app.close()
        return 0
    print(f"Transactions ({len(transactions)} of {len(app.state.transactions)}):")
    print("-" * 80)
    _print_transactions(app, transactions)
    app.close()
    return 0


def cmd_insights(args: argparse.Namespace) -> int:
    """Print spending by category for the chosen period."""
    from spendvolt.analytics.engine import AnalysisPeriod

    app = _get_app()
    period = AnalysisPeriod(args.period)
    spending = app.grouped_category_spending(period)
    if not spending:
        print(f"No spending in the last {period.value}.")
        app.close()
        return 0
    print(f"Spending over the last {period.value}:")
    for s in spending:
        print(f"  {s.category_name:<14}  {_money(app, s.total_amount):>12}  {s.percentage:5.1f}%")
    app.close()
    return 0


# ── Categories ───────────────────────────────────────────


def cmd_category(args: argparse.Namespace) -> int:
    """Category management commands."""
    sub = args.category_command
    if sub is None:
        print("Usage: spendvolt category {list,add,delete,set}")
        return 1

    app = _get_app()
    try:
        if sub == "list":
            for cat in app.state.categories:
                count = app.count_transactions(cat.name)
                print(f"  {cat.name:<16}  {cat.icon:<22}  {count} transaction(s)")
        elif sub == "add":
            cat = app.add_category(args.name, args.icon)
            print(f"Added category '{cat.name}'.")
        elif sub == "delete":
            moved = app.delete_category(args.name, args.to)
            target = args.to or "Unassigned"
            print(f"Deleted '{args.name}'. {moved} transaction(s) moved to '{target}'.")
        elif sub == "set":
            txn = app.update_transaction_category(args.id, args.category)
            print(f"{txn.merchant_name} is now in '{txn.category_name}'.")
        else:
            return 1
        _report_remote(app)
    finally:
        app.close()
    return 0


# ── Recurring rules ──────────────────────────────────────


def cmd_recurring(args: argparse.Namespace) -> int:
    from spendvolt.models import RecurrenceFrequency

    sub = args.recurring_command
    if sub is None:
        print("Usage: spendvolt recurring {list,add,delete}")
        return 1

    app = _get_app()
    try:
        if sub == "list":
            app.fetch_recurring()
            rules = app.state.recurring_transactions
            if not rules:
                print("No recurring payments.")
            for r in rules:
                active = "" if r.is_active else " (paused)"
                print(
                    f"  {r.id or '-':<10}  {r.merchant_name:<20}  {_money(app, r.amount):>12}"
                    f"  {r.frequency.display_name:<12}  next {r.next_due_date:%Y-%m-%d}{active}"
                )
        elif sub == "add":
            rule = app.add_recurring(
                args.merchant,
                args.amount,
                args.category,
                RecurrenceFrequency(args.frequency),
                args.start or datetime.now(),
            )
            print(f"Added {rule.frequency.display_name.lower()} payment to {rule.merchant_name}.")
        elif sub == "delete":
            app.delete_recurring(args.id)
            print(f"Deleted recurring payment {args.id}.")
        else:
            return 1
        _report_remote(app)
    finally:
        app.close()
    return 0


# ── Profile ──────────────────────────────────────────────


def cmd_profile(args: argparse.Namespace) -> int:
    from dataclasses import replace

    from spendvolt.models import Currency, EnergyType

    sub = args.profile_command
    if sub is None:
        print("Usage: spendvolt profile {show,set}")
        return 1

    app = _get_app()
    try:
        profile = app.state.profile
        if sub == "set":
            changes = {}
            if args.name:
                changes["name"] = args.name
            if args.budget is not None:
                changes["monthly_budget"] = args.budget
            if args.currency:
                changes["currency"] = Currency[args.currency]
            if args.threshold is not None:
                changes["budget_warning_threshold"] = args.threshold
            if args.reset_day is not None:
                changes["monthly_reset_day"] = args.reset_day
            if args.payment_app:
                changes["default_payment_app"] = args.payment_app
            if args.energy:
                changes["energy_type"] = EnergyType[args.energy]
            if not changes:
                print("Nothing to change.")
                return 1
            profile = replace(profile, **changes)
            app.save_profile(profile)
            print("Profile saved.")
            _report_remote(app)

        print(f"  Name:              {profile.name}")
        print(f"  Currency:          {profile.currency.name} ({profile.currency.symbol})")
        print(f"  Monthly budget:    {_money(app, profile.monthly_budget)}")
        print(f"  Warning threshold: {profile.budget_warning_threshold:.0%}")
        print(f"  Reset day:         {profile.monthly_reset_day}")
        print(f"  Payment app:       {profile.default_payment_app}")
        print(f"  Energy type:       {profile.energy_type.value}")
    finally:
        app.close()
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "login": cmd_login,
    "logout": cmd_logout,
    "status": cmd_status,
    "sync": cmd_sync,
    "scan": cmd_scan,
    "confirm": cmd_confirm,
    "reject": cmd_reject,
    "delete": cmd_delete,
    "add": cmd_add,
    "pending": cmd_pending,
    "history": cmd_history,
    "insights": cmd_insights,
    "category": cmd_category,
    "recurring": cmd_recurring,
    "profile": cmd_profile,
}


def main(argv: list[str] | None = None):
    from spendvolt.models import Currency, EnergyType, RecurrenceFrequency, ValidationError

    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="spendvolt",
        description="SpendVolt expense tracker",
    )
    subparsers = parser.add_subparsers(dest="command")

    # login / logout
    login_p = subparsers.add_parser("login", help="Log in to the SpendVolt backend")
    login_p.add_argument("username", help="Account username or email")
    login_p.add_argument("--password", help="Password (prompted if omitted)")
    subparsers.add_parser("logout", help="Clear the session and cached transactions")

    # status / sync
    subparsers.add_parser("status", help="Show budget, spend and pace for this month")
    subparsers.add_parser("sync", help="Fetch the dashboard and merge local changes")

    # scan
    scan_p = subparsers.add_parser("scan", help="Start a payment from a scanned UPI URL")
    scan_p.add_argument("url", help="Scanned UPI URL (upi://pay?...)")
    scan_p.add_argument("--app", help="Payment app (default: profile setting)")
    scan_p.add_argument("--amount", help="Amount, if the code carries none")
    scan_p.add_argument("--merchant", help="Override the payee name")
    scan_p.add_argument("--category", default="Other", help="Category name")
    scan_p.add_argument("--no-launch", action="store_true", help="Record without opening an app")

    # confirm / reject / delete
    confirm_p = subparsers.add_parser("confirm", help="Mark a pending payment successful")
    confirm_p.add_argument("id", help="Transaction id")
    confirm_p.add_argument("--amount", help="Final amount paid")
    reject_p = subparsers.add_parser("reject", help="Mark a pending payment failed")
    reject_p.add_argument("id", help="Transaction id")
    delete_p = subparsers.add_parser("delete", help="Delete a transaction")
    delete_p.add_argument("id", help="Transaction id")

    # add
    add_p = subparsers.add_parser("add", help="Record a completed payment")
    add_p.add_argument("merchant", help="Merchant name")
    add_p.add_argument("amount", help="Amount paid")
    add_p.add_argument("--category", default="Other", help="Category name")
    add_p.add_argument("--date", type=_parse_day, help="Payment date (YYYY-MM-DD)")

    # pending / history / insights
    subparsers.add_parser("pending", help="List payments awaiting confirmation")
    history_p = subparsers.add_parser("history", help="List recent transactions")
    history_p.add_argument("--limit", type=int, default=50, help="Rows to show")
    insights_p = subparsers.add_parser("insights", help="Spending by category")
    insights_p.add_argument(
        "--period", choices=["week", "month", "year"], default="month",
        help="Trailing period to analyse",
    )

    # category
    cat_p = subparsers.add_parser("category", help="Manage categories")
    cat_sub = cat_p.add_subparsers(dest="category_command")
    cat_sub.add_parser("list", help="List categories with transaction counts")
    cat_add_p = cat_sub.add_parser("add", help="Add a category")
    cat_add_p.add_argument("name", help="Category name")
    cat_add_p.add_argument("--icon", help="Icon name")
    cat_del_p = cat_sub.add_parser("delete", help="Delete a category")
    cat_del_p.add_argument("name", help="Category to delete")
    cat_del_p.add_argument("--to", help="Move its transactions here (default: Unassigned)")
    cat_set_p = cat_sub.add_parser("set", help="Change a transaction's category")
    cat_set_p.add_argument("id", help="Transaction id")
    cat_set_p.add_argument("category", help="New category name")

    # recurring
    rec_p = subparsers.add_parser("recurring", help="Manage recurring payments")
    rec_sub = rec_p.add_subparsers(dest="recurring_command")
    rec_sub.add_parser("list", help="List recurring payments")
    rec_add_p = rec_sub.add_parser("add", help="Add a recurring payment")
    rec_add_p.add_argument("merchant", help="Merchant name")
    rec_add_p.add_argument("amount", help="Amount per payment")
    rec_add_p.add_argument(
        "--frequency", choices=[f.value for f in RecurrenceFrequency], default="MONTHLY",
    )
    rec_add_p.add_argument("--category", default="Other", help="Category name")
    rec_add_p.add_argument("--start", type=_parse_day, help="First due date (YYYY-MM-DD)")
    rec_del_p = rec_sub.add_parser("delete", help="Delete a recurring payment")
    rec_del_p.add_argument("id", help="Recurring payment id")

    # profile
    prof_p = subparsers.add_parser("profile", help="Show or edit the profile")
    prof_sub = prof_p.add_subparsers(dest="profile_command")
    prof_sub.add_parser("show", help="Show the profile")
    prof_set_p = prof_sub.add_parser("set", help="Edit the profile")
    prof_set_p.add_argument("--name")
    prof_set_p.add_argument("--budget", type=float, help="Monthly budget")
    prof_set_p.add_argument("--currency", choices=[c.name for c in Currency])
    prof_set_p.add_argument("--threshold", type=float, help="Warning threshold (0-1)")
    prof_set_p.add_argument("--reset-day", type=int, help="Monthly reset day (1-31)")
    prof_set_p.add_argument("--payment-app", help="Default payment app")
    prof_set_p.add_argument("--energy", choices=[e.name for e in EnergyType])

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    try:
        code = handler(args)
    except (ValidationError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
