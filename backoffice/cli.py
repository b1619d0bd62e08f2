# Overview: Flask CLI command groups for session, reporting and device approval from a terminal.

# backoffice/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Point API_BASE_URL at the backend (default: http://localhost:5000/api).
#
# Session (shared with every tab/terminal using the same SESSION_STORAGE_URL):
# - flask session login --email admin@example.com
#   Prompts for the password. Prints the landing path, or the device details
#   when the device still needs approval.
# - flask session logout
# - flask session whoami [--refresh]
#
# Reports:
# - flask report daily [--from 2024-01-01 --to 2024-01-07 | --preset last7]
#   Per-day paid / expenses / COGS purchases / net, then range totals.
#
# Device approval (overall admin):
# - flask devices list
# - flask devices approve 12
# - flask devices approve --code 4F7K2Q
# - flask devices reject 12
# - flask devices summary
#
# Sales (logged-in terminal):
# - flask sales export [--format csv|pdf] [--from ... --to ... | --today] [--output FILE]
# - flask sales receipt 101
# - flask sales pay 101 --amount 500 [--method mpesa] [--credit]
# - flask sales close-dispatch 101 [--note "Delivered"]

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import get_context
from .models import LOGIN_OK, LOGIN_PENDING
from .responses import HANDLED_ERRORS
from .services import sales_service
from .services.dashboard_service import DashboardRefreshError
from .services.normalize_service import normalize_amount
from .time_utils import today_in_zone


def _fail(message: str):
    click.echo(f"FAIL {message}")
    raise SystemExit(1)


def _require_login(session):
    session.sync_from_storage()
    if not session.is_logged_in:
        _fail("Not logged in. Run: flask session login")


@click.group('session')
def session_group():
    """Log this terminal in and out."""


@session_group.command('login')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, help='Password')
@with_appcontext
def login(email, password):
    """Log in; the session is shared with other tabs on this machine."""
    session = get_context().session
    result = session.login(email, password)

    if result.kind == LOGIN_OK:
        user = result.user or {}
        click.echo(f"PASS Logged in as {user.get('email') or user.get('id')} ({user.get('role') or 'no role'})")
        click.echo(f"     Start at: {session.start_path()}")
        return

    if result.kind == LOGIN_PENDING:
        pending = result.pending_approval
        click.echo(f"WAIT {result.message}")
        if pending is not None:
            click.echo(f"     IP: {pending.ip or '-'}")
            click.echo(f"     Device: {pending.user_agent or '-'}")
            if pending.request_id is not None:
                click.echo(f"     Request ID: {pending.request_id}")
            if pending.email_sent:
                click.echo("     An approval email was sent to the overall admin.")
        raise SystemExit(2)

    _fail(result.message)


@session_group.command('logout')
@with_appcontext
def logout():
    """Log out this terminal (and every tab sharing its storage)."""
    get_context().session.logout()
    click.echo("PASS Logged out")


@session_group.command('whoami')
@click.option('--refresh', is_flag=True, help='Re-pull the profile from the backend first')
@with_appcontext
def whoami(refresh):
    """Show the logged-in user."""
    session = get_context().session
    _require_login(session)

    if refresh:
        try:
            session.fetch_current_user()
        except HANDLED_ERRORS as e:
            _fail(f"Profile refresh failed: {e}")
        if not session.is_logged_in:
            _fail(session.logout_message or "Session ended")

    user = session.user or {}
    click.echo(f"{'ID':<8} {user.get('id')}")
    click.echo(f"{'Email':<8} {user.get('email') or '-'}")
    click.echo(f"{'Role':<8} {user.get('role') or '-'}")
    if session.is_overall_admin:
        click.echo(f"{'Admin':<8} overall")
    click.echo(f"{'Start':<8} {session.start_path()}")


@click.group('report')
def report_group():
    """Financial reports for the logged-in terminal."""


def _money(value: float) -> str:
    return f"{value:,.2f}"


@report_group.command('daily')
@click.option('--from', 'date_from', help='First day (YYYY-MM-DD)')
@click.option('--to', 'date_to', help='Last day (YYYY-MM-DD)')
@click.option('--preset', type=click.Choice(['today', 'yesterday', 'last7']), help='Date preset (business timezone)')
@with_appcontext
def daily_report(date_from, date_to, preset):
    """Per-day paid, expenses, COGS purchases and net, then totals."""
    ctx = get_context()
    _require_login(ctx.session)

    try:
        if preset == 'today':
            snapshot = ctx.dashboard.refresh_today()
        elif preset == 'yesterday':
            snapshot = ctx.dashboard.refresh_yesterday()
        elif preset == 'last7':
            snapshot = ctx.dashboard.refresh_last_7_days()
        else:
            snapshot = ctx.dashboard.refresh(date_from, date_to)
    except DashboardRefreshError as e:
        if e.unauthorized:
            _fail(ctx.session.logout_message or "You have been logged out.")
        _fail(str(e))

    if snapshot is None:
        _fail("Refresh was superseded")

    click.echo(f"\nRange: {snapshot.date_from} .. {snapshot.date_to}")
    click.echo("=" * 84)
    click.echo(f"{'Date':<12} {'Sales':>6} {'Paid':>14} {'Expenses':>14} {'COGS buys':>14} {'Net':>14}")
    click.echo("=" * 84)

    for row in snapshot.rows:
        click.echo(
            f"{row.date:<12} {row.count:>6} {_money(row.paid):>14} {_money(row.op_ex):>14} "
            f"{_money(row.cogs_purchases):>14} {_money(row.net):>14}"
        )
    if not snapshot.rows:
        click.echo("No activity in range.")

    totals = snapshot.totals
    click.echo("=" * 84)
    click.echo(
        f"{'TOTAL':<12} {totals.count:>6} {_money(totals.paid):>14} {_money(totals.op_ex):>14} "
        f"{_money(totals.cogs_purchases):>14} {_money(totals.net):>14}"
    )
    click.echo(f"\nBalance due: {_money(totals.balance)}")
    click.echo(f"Gross profit: {_money(totals.gross_profit)}  (sales {_money(totals.cogs_sales)} - COGS {_money(totals.cogs_of_sold_goods)})")
    click.echo(f"Net profit: {_money(totals.net_profit)}")
    if snapshot.undated_op_ex or snapshot.undated_cogs_purchases:
        click.echo(
            f"WARN  Undated expenses are not in the daily rows, Net or Net profit: "
            f"{_money(snapshot.undated_op_ex)} OpEx, {_money(snapshot.undated_cogs_purchases)} COGS purchases"
        )
        click.echo(f"      Net profit with undated OpEx: {_money(totals.net_profit - snapshot.undated_op_ex)}")
    click.echo("")


@click.group('devices')
def devices_group():
    """Device approval (overall admin only)."""


def _require_overall_admin(session):
    _require_login(session)
    if not session.is_overall_admin:
        _fail("Overall admin access required")


@devices_group.command('list')
@with_appcontext
def list_devices():
    """List pending device requests."""
    session = get_context().session
    _require_overall_admin(session)

    try:
        requests = session.get_device_requests()
    except HANDLED_ERRORS as e:
        _fail(str(e))

    if not requests:
        click.echo("No pending device requests.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<6} {'User':<30} {'IP':<16} {'Requested':<22} {'Device'}")
    click.echo("=" * 100)
    for r in requests:
        user = r.user_email or str(r.user_id or '-')
        click.echo(f"{r.id:<6} {user:<30} {r.ip or '-':<16} {r.created_at or '-':<22} {(r.user_agent or '-')[:40]}")
    click.echo("=" * 100 + "\n")


@devices_group.command('approve')
@click.argument('request_id', type=int, required=False)
@click.option('--code', help='Approve with the one-time code instead of a request ID')
@with_appcontext
def approve_device(request_id, code):
    """Approve a device request by ID or by code."""
    if (request_id is None) == (code is None):
        _fail("Give exactly one of REQUEST_ID or --code")

    session = get_context().session
    _require_overall_admin(session)

    try:
        if code:
            session.approve_by_code(code)
        else:
            session.approve_device(request_id)
    except HANDLED_ERRORS as e:
        _fail(str(e))
    click.echo("PASS Device approved")


@devices_group.command('reject')
@click.argument('request_id', type=int)
@with_appcontext
def reject_device(request_id):
    """Reject (delete) a device request."""
    session = get_context().session
    _require_overall_admin(session)

    try:
        session.reject_device_request(request_id)
    except HANDLED_ERRORS as e:
        _fail(str(e))
    click.echo(f"PASS Rejected device request {request_id}")


@devices_group.command('summary')
@with_appcontext
def device_summary():
    """Show device counts reported by the backend."""
    session = get_context().session
    _require_overall_admin(session)

    try:
        summary = session.get_device_summary()
    except HANDLED_ERRORS as e:
        _fail(str(e))

    if not summary:
        click.echo("No device summary available.")
        return
    for key in sorted(summary):
        click.echo(f"{key:<24} {summary[key]}")


@click.group('sales')
def sales_group():
    """Payments, dispatch, receipts and exports."""


@sales_group.command('export')
@click.option('--format', 'kind', type=click.Choice(['csv', 'pdf']), default='csv', show_default=True)
@click.option('--from', 'date_from', help='First day (YYYY-MM-DD)')
@click.option('--to', 'date_to', help='Last day (YYYY-MM-DD)')
@click.option('--today', is_flag=True, help='Export today (business timezone)')
@click.option('--output', 'output', type=click.Path(dir_okay=False, writable=True), help='File to write (default: server-style name)')
@with_appcontext
def export_sales(kind, date_from, date_to, today, output):
    """Download the sales CSV or the sold-items PDF."""
    ctx = get_context()
    _require_login(ctx.session)

    if today:
        date_from = date_to = today_in_zone(current_app.config['BUSINESS_TIMEZONE'])

    try:
        if kind == 'csv':
            content = sales_service.export_sales_csv(ctx.session, date_from=date_from, date_to=date_to)
        else:
            content = sales_service.export_sales_items_pdf(ctx.session, date_from=date_from, date_to=date_to)
    except HANDLED_ERRORS as e:
        _fail(f"Export failed: {e}")

    path = output or sales_service.export_filename(kind)
    with open(path, 'wb') as f:
        f.write(content)
    click.echo(f"PASS Wrote {len(content)} bytes to {path}")


@sales_group.command('receipt')
@click.argument('sale_id', type=int)
@with_appcontext
def show_receipt(sale_id):
    """Print the receipt fields of a sale."""
    ctx = get_context()
    _require_login(ctx.session)

    try:
        receipt = sales_service.get_receipt(ctx.session, sale_id)
    except HANDLED_ERRORS as e:
        _fail(str(e))

    if not receipt:
        click.echo("No receipt data.")
        return
    for key in sorted(receipt):
        value = receipt[key]
        if isinstance(value, (dict, list)):
            continue
        click.echo(f"{key:<20} {value}")
    items = receipt.get('items') if isinstance(receipt.get('items'), list) else []
    for item in items:
        click.echo(f"  - {item.get('label') or item.get('name') or 'item'}: {item.get('quantity', '')}")


@sales_group.command('pay')
@click.argument('sale_id', type=int)
@click.option('--amount', required=True, help='Amount paid')
@click.option('--method', 'payment_method', default='cash', show_default=True)
@click.option('--date', help='Payment date (YYYY-MM-DD)')
@click.option('--credit', is_flag=True, help='Pay down a credit sale')
@with_appcontext
def pay_sale(sale_id, amount, payment_method, date, credit):
    """Record a payment against a sale."""
    ctx = get_context()
    _require_login(ctx.session)

    try:
        if credit:
            result = sales_service.create_credit_payment(
                ctx.session, sale_id, amount=amount, payment_method=payment_method, date=date,
            )
        else:
            sales_service.create_payment(
                ctx.session, sale_id, amount=amount, payment_method=payment_method, date=date,
            )
    except HANDLED_ERRORS as e:
        _fail(str(e))

    click.echo(f"PASS Payment of {_money(normalize_amount(amount))} recorded for sale {sale_id}")
    if credit and result.get('email_sent') is True:
        click.echo("     Statement emailed to the customer.")


@sales_group.command('close-dispatch')
@click.argument('sale_id', type=int)
@click.option('--note', help='Dispatch note')
@with_appcontext
def close_dispatch(sale_id, note):
    """Close the dispatch of a sale."""
    ctx = get_context()
    _require_login(ctx.session)

    try:
        sales_service.close_dispatch(ctx.session, sale_id, {'note': note} if note else {})
    except HANDLED_ERRORS as e:
        _fail(str(e))
    click.echo(f"PASS Dispatch closed for sale {sale_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(session_group)
    app.cli.add_command(report_group)
    app.cli.add_command(devices_group)
    app.cli.add_command(sales_group)
