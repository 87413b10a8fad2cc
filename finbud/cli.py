# finbud/cli.py
import base64
import logging

import click

from finbud.client import FinanceSession, LocalTransactionRepository, RemoteTransactionRepository
from finbud.config import configure_logging, load_config
from finbud.core.models import EXPENSE_CATEGORIES, INCOME_CATEGORIES, TRANSACTION_TYPES
from finbud.errors import FinBudError
from finbud.state import filter_transactions, sample_transactions, sort_for_display

logger = logging.getLogger(__name__)


def _session(ctx) -> FinanceSession:
    session = ctx.obj.get("session")
    if session is None:
        cfg = ctx.obj["config"]
        api = cfg.get("api", {})
        remote = None if ctx.obj["local"] else RemoteTransactionRepository(
            api.get("url"), timeout=float(api.get("timeout") or 10)
        )
        local = LocalTransactionRepository(cfg["local_path"])
        session = FinanceSession(remote, local, prefer_server=remote is not None)
        session.load()
        if session.state.connection_error:
            click.echo(f"⚠️  {session.state.connection_error} Your data is being saved locally.", err=True)
        ctx.obj["session"] = session
    return session


def _money(value: float) -> str:
    return f"${value:,.2f}"


@click.group()
@click.option(
    '--config', 'config_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='Path to finbud.yaml'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file containing API keys'
)
@click.option(
    '--local',
    is_flag=True,
    default=False,
    help='Use the local JSON file only, never contact the server.'
)
@click.pass_context
def main(ctx, config_path, env_file, local):
    """
    Track income and expenses against a FinBud server, falling back to a
    local JSON file whenever the server cannot be reached.
    """
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_path, env_file=env_file)
    ctx.obj["local"] = local


@main.command()
@click.option('--host', default=None, help='Host to bind (default from config)')
@click.option('--port', default=None, type=int, help='Port to bind (default from config)')
@click.option('--db', 'db_path', default=None, type=click.Path(dir_okay=False), help='SQLite database file')
@click.pass_context
def serve(ctx, host, port, db_path):
    """Run the REST API."""
    from finbud.web import run_server

    cfg = ctx.obj["config"]
    if db_path:
        cfg["db_path"] = db_path
    run_server(cfg, host, port)


@main.command(name="list")
@click.option('--search', default='', help='Match description, category or vendor')
@click.option('--type', 'tx_type', default='all', type=click.Choice(['all', *TRANSACTION_TYPES]))
@click.option('--category', default='all', help='Only this category')
@click.pass_context
def list_cmd(ctx, search, tx_type, category):
    """Show transactions, newest first."""
    state = _session(ctx).state
    rows = sort_for_display(filter_transactions(state.transactions, search, tx_type, category))
    if state.showing_sample:
        click.echo("Showing sample data. Add your own transactions to get started.")
    if not rows:
        click.echo("No transactions found.")
        return
    for tx in rows:
        sign = "+" if tx.type == "income" else "-"
        source = " [receipt]" if tx.source == "receipt" else ""
        click.echo(
            f"{tx.date}  {sign}{_money(tx.amount):>12}  {tx.category:<14} "
            f"{tx.description}{source}  ({tx.id})"
        )


@main.command()
@click.argument('tx_type', type=click.Choice(TRANSACTION_TYPES))
@click.argument('amount')
@click.argument('category')
@click.option('--description', '-d', default=None)
@click.option('--date', 'tx_date', default=None, help='YYYY-MM-DD (default: today)')
@click.pass_context
def add(ctx, tx_type, amount, category, description, tx_date):
    """Record a transaction manually."""
    choices = INCOME_CATEGORIES if tx_type == "income" else EXPENSE_CATEGORIES
    if category.lower() not in choices:
        click.echo(f"Unknown {tx_type} category '{category}', recording as 'other'.", err=True)
    try:
        tx = _session(ctx).add(tx_type, amount, category, description, tx_date)
    except FinBudError as e:
        raise click.ClickException(str(e))
    click.echo(f"Added {tx.type} {_money(tx.amount)} ({tx.category}) with id {tx.id}.")


@main.command()
@click.argument('transaction_id')
@click.pass_context
def delete(ctx, transaction_id):
    """Delete a transaction by id."""
    _session(ctx).delete(transaction_id)
    click.echo(f"Deleted transaction {transaction_id}.")


@main.command()
@click.pass_context
def summary(ctx):
    """Print totals, expenses by category and the monthly series."""
    state = _session(ctx).state
    analytics = state.analytics
    click.echo(f"Total balance:  {_money(analytics.balance)}")
    click.echo(f"Total income:   {_money(analytics.totalIncome)}")
    click.echo(f"Total expenses: {_money(analytics.totalExpense)}")
    click.echo(f"Transactions:   {len(state.transactions)}")

    if analytics.expensesByCategory:
        click.echo("\nExpenses by category:")
        ranked = sorted(analytics.expensesByCategory.items(), key=lambda kv: kv[1], reverse=True)
        for category, total in ranked:
            share = total / analytics.totalExpense * 100 if analytics.totalExpense else 0.0
            click.echo(f"  {category:<14} {_money(total):>12}  {share:5.1f}%")

    if analytics.monthlyData:
        click.echo("\nMonthly:")
        for month in analytics.monthlyData:
            click.echo(
                f"  {month.month}  income {_money(month.income):>12}  "
                f"expense {_money(month.expense):>12}"
            )


@main.command()
@click.argument('image', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def scan(ctx, image):
    """Send a receipt image to the server and record the expense."""
    with open(image, 'rb') as f:
        payload = base64.b64encode(f.read()).decode('ascii')
    try:
        receipt_data, tx = _session(ctx).scan_receipt(payload)
    except FinBudError as e:
        raise click.ClickException(f"Failed to process receipt: {e}")
    vendor = receipt_data.get("vendor") or "unknown vendor"
    click.echo(f"Receipt from {vendor}: {tx.description}, {_money(tx.amount)} ({tx.category}).")


@main.command()
@click.pass_context
def sample(ctx):
    """Replace the local copy with the demo data set."""
    local = LocalTransactionRepository(ctx.obj["config"]["local_path"])
    local.replace_all(sample_transactions())
    click.echo(f"Loaded {len(local.list())} sample transaction(s) into {local.path}.")
