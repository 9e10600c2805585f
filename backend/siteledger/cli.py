# Overview: Flask CLI command groups for bootstrap, tenant management and reconciliation.

# backend/siteledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
#   List all companies.
# - python -m flask companies create --name "Acme Builders" --code ACME --admin-username owner --admin-email owner@acme.test --admin-password "Password123"
#   Create a company with its ADMIN user and default chart of accounts.
# - python -m flask companies init-coa --company-id 1
#   Create the default chart of accounts for a company that has none.
#
# User inspection/bootstrap:
# - python -m flask users list [--company-id 1]
# - python -m flask users create --company-id 1 --username storekeeper --email sk@acme.test --password "Password123" --role STOREKEEPER
#
# Reconciliation:
# - python -m flask reconcile expenses [--company-id 1]
#   List ISSUED material requests whose expense is FAILED or PENDING, and paid
#   payroll settlements of project workers with no ledger transaction.

import click
from flask.cli import with_appcontext

from .errors import SiteLedgerError
from .extensions import db
from .models import Account, Company, MaterialRequest, User
from .permissions import ROLES
from .services import auth_service
from .services.concurrency import run_in_transaction
from .services.finance_service import init_default_coa
from .services.payroll_service import unlinked_settlements


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask companies create' to add a tenant.")


@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    companies = db.session.query(Company).order_by(Company.id).all()
    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Users'}")
    click.echo("="*80)
    for company in companies:
        user_count = db.session.query(User).filter_by(company_id=company.id).count()
        active_str = "Yes" if company.is_active else "No"
        click.echo(f"{company.id:<5} {company.name:<30} {company.code or '-':<15} {active_str:<8} {user_count}")
    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', help='Short code (unique)')
@click.option('--admin-username', 'username', required=True, help='ADMIN username')
@click.option('--admin-email', 'email', required=True, help='ADMIN email')
@click.option('--admin-password', 'password', required=True, help='ADMIN password')
@with_appcontext
def create_company_cli(name, code, username, email, password):
    try:
        company, admin = auth_service.register_company(
            company_name=name,
            company_code=code,
            admin_username=username,
            admin_email=email,
            admin_password=password,
        )
    except SiteLedgerError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code or '-'})")
    click.echo(f"PASS Created ADMIN user: {admin.username} ({admin.email})")


@companies_group.command('init-coa')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def init_coa_cli(company_id):
    """Create the default chart of accounts; refused when accounts already exist."""
    company = db.session.get(Company, company_id)
    if not company:
        click.echo(f"FAIL Company ID {company_id} not found")
        raise SystemExit(1)
    if db.session.query(Account).filter_by(company_id=company_id).first():
        click.echo(f"WARN Company {company.name} already has a chart of accounts, skipping")
        return
    accounts = run_in_transaction(lambda: init_default_coa(company_id))
    click.echo(f"PASS Created {len(accounts)} accounts for {company.name}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--company-id', type=int, help='Filter by company ID')
@with_appcontext
def list_users_cli(company_id):
    query = db.session.query(User).order_by(User.company_id, User.id)
    if company_id:
        query = query.filter_by(company_id=company_id)
    users = query.all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Company':<8} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("="*100)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.company_id:<8} {user.username:<20} {user.email:<30} {active_str:<8} {user.role}")
    click.echo("="*100 + "\n")


@users_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--password', required=True)
@click.option('--name', default=None)
@click.option('--role', type=click.Choice(ROLES), default='SITE_ENGINEER', show_default=True)
@with_appcontext
def create_user_cli(company_id, username, email, password, name, role):
    try:
        user = auth_service.create_user(
            company_id=company_id,
            username=username,
            email=email,
            password=password,
            name=name,
            role=role,
        )
    except SiteLedgerError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@click.group('reconcile')
def reconcile_group():
    """Reconciliation reports for best-effort side effects."""


@reconcile_group.command('expenses')
@click.option('--company-id', type=int, help='Filter by company ID')
@with_appcontext
def unlinked_expenses_cli(company_id):
    """
    List issued material requests and payroll settlements without a booked expense.

    Relink them through POST /api/material-requests/<id>/relink_expense and
    POST /api/labour/settlements/<id>/relink-expense.
    """
    query = db.session.query(MaterialRequest).filter(
        MaterialRequest.status == "ISSUED",
        MaterialRequest.expense_status.in_(("FAILED", "PENDING")),
    )
    if company_id:
        query = query.filter(MaterialRequest.company_id == company_id)
    pending = query.order_by(MaterialRequest.id).all()
    settlements = unlinked_settlements(company_id)
    if not pending and not settlements:
        click.echo("PASS No unlinked expenses.")
        return
    for request in pending:
        click.echo(
            f"WARN {request.request_number} (company {request.company_id}, "
            f"id {request.id}) expense {request.expense_status}"
        )
    for settlement in settlements:
        worker = settlement.worker
        click.echo(
            f"WARN settlement {settlement.id} for {worker.worker_code} (company {worker.company_id}) "
            f"paid {settlement.amount_paid_cents} with no payroll expense"
        )
    click.echo(f"\n{len(pending)} request(s) and {len(settlements)} settlement(s) need relinking.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)  # Multi-tenant company management
    app.cli.add_command(users_group)
    app.cli.add_command(reconcile_group)
