# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/motoserve/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to motoserve (PowerShell: $env:FLASK_APP="motoserve").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --name "Asha" --email asha@example.com --role customer
# - python -m flask users issue-token --user-id 1
#   Print a bearer token for local testing (issuance proper belongs to the auth service).
#
# Shops:
# - python -m flask shops create --owner-id 2 --name "Ride Right Garage" [--rating 4.5]
# - python -m flask shops add-service --shop-id 1 --name "Oil change" --cost-cents 49900
# - python -m flask shops add-worker --shop-id 1 --name "Ravi" --rating 4.8 [--user-id 3]
#
# Bookings:
# - python -m flask bookings sweep [--shop-id 1]
#   Retry worker assignment for confirmed bookings (cron entry point).
#
# Analytics:
# - python -m flask analytics abuse-trends [--limit 20]

import click
from flask.cli import with_appcontext

from .context import SYSTEM_ACTOR, build_context
from .errors import ServiceError
from .extensions import db
from .models import Shop, ShopService, User, USER_ROLES, Worker
from .services import analytics_service, assignment_service, session_service


def _system_context():
    return build_context(db.session, SYSTEM_ACTOR)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables from the model metadata."""
    db.create_all()
    click.echo("PASS Tables created")


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
    click.echo("BUILD Recreating tables...")
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--name', required=True, help='Display name')
@click.option('--email', required=True, help='Unique email')
@click.option('--role', type=click.Choice(USER_ROLES), required=True, help='Role')
@click.option('--phone', default=None, help='Phone number')
@with_appcontext
def create_user_cli(name, email, role, phone):
    """Create a user."""
    if db.session.query(User).filter_by(email=email).first():
        click.echo(f"FAIL User with email '{email}' already exists")
        raise SystemExit(1)

    user = User(name=name, email=email, role=role, phone=phone, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}' (ID: {user.id})")


@users_group.command('issue-token')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def issue_token_cli(user_id):
    """Issue a session token for local testing."""
    try:
        record, token = session_service.create_session(db.session, user_id)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Token for user {user_id} (expires {record.expires_at.isoformat()}Z):")
    click.echo(token)


@click.group('shops')
def shops_group():
    """Shop, service and worker bootstrap commands."""


@shops_group.command('create')
@click.option('--owner-id', type=int, required=True, help='Owner user ID')
@click.option('--name', required=True, help='Shop name')
@click.option('--rating', type=float, default=None, help='Initial rating (0-5)')
@with_appcontext
def create_shop_cli(owner_id, name, rating):
    owner = db.session.get(User, owner_id)
    if owner is None or owner.role != "owner":
        click.echo(f"FAIL User {owner_id} is not a shop owner")
        raise SystemExit(1)

    shop = Shop(owner_id=owner_id, name=name, rating=rating, is_active=True)
    db.session.add(shop)
    db.session.commit()
    click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")


@shops_group.command('add-service')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@click.option('--name', required=True, help='Service name')
@click.option('--cost-cents', type=int, required=True, help='Base cost in minor units')
@click.option('--minutes', type=int, default=None, help='Estimated duration')
@with_appcontext
def add_service_cli(shop_id, name, cost_cents, minutes):
    if db.session.get(Shop, shop_id) is None:
        click.echo(f"FAIL Shop ID {shop_id} not found")
        raise SystemExit(1)
    if cost_cents < 0:
        click.echo("FAIL cost-cents cannot be negative")
        raise SystemExit(1)

    service = ShopService(shop_id=shop_id, name=name, base_cost_cents=cost_cents,
                          estimated_minutes=minutes, is_active=True)
    db.session.add(service)
    db.session.commit()
    click.echo(f"PASS Created service: {service.name} (ID: {service.id}) at shop {shop_id}")


@shops_group.command('add-worker')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@click.option('--name', required=True, help='Worker name')
@click.option('--rating', type=float, default=0.0, help='Rating (0-5)')
@click.option('--user-id', type=int, default=None, help='Linked worker user ID')
@with_appcontext
def add_worker_cli(shop_id, name, rating, user_id):
    if db.session.get(Shop, shop_id) is None:
        click.echo(f"FAIL Shop ID {shop_id} not found")
        raise SystemExit(1)
    if user_id is not None:
        user = db.session.get(User, user_id)
        if user is None or user.role != "worker":
            click.echo(f"FAIL User {user_id} is not a worker")
            raise SystemExit(1)

    worker = Worker(shop_id=shop_id, name=name, rating=rating, user_id=user_id, is_available=True)
    db.session.add(worker)
    db.session.commit()
    click.echo(f"PASS Created worker: {worker.name} (ID: {worker.id}) at shop {shop_id}")


@click.group('bookings')
def bookings_group():
    """Booking maintenance commands."""


@bookings_group.command('sweep')
@click.option('--shop-id', type=int, default=None, help='Limit to one shop')
@with_appcontext
def sweep_cli(shop_id):
    """Retry worker assignment for every confirmed booking."""
    try:
        results = assignment_service.run_assignment_sweep(_system_context(), shop_id)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    assigned = [r for r in results if r.assigned]
    click.echo(f"PASS Sweep processed {len(results)} confirmed bookings, assigned {len(assigned)}")
    for r in assigned:
        click.echo(f"     booking {r.booking.id} -> worker {r.worker.id} ({r.worker.name})")


@click.group('analytics')
def analytics_group():
    """Admin analytics reports."""


@analytics_group.command('abuse-trends')
@click.option('--limit', type=int, default=analytics_service.TRENDS_LIMIT, help='Max flags shown')
@with_appcontext
def abuse_trends_cli(limit):
    report = analytics_service.abuse_trends(_system_context(), limit=limit)

    click.echo("\n" + "="*80)
    click.echo(f"{'Shop':<6} {'Name':<28} {'Issue':<24} {'Count':<6} {'Severity'}")
    click.echo("="*80)
    for t in report["trends"]:
        click.echo(f"{t['shop_id']:<6} {t['shop_name'][:28]:<28} {t['abuse_type']:<24} {t['count']:<6} {t['severity']}")
    click.echo("="*80)
    click.echo(f"{report['total_trends']} flags total\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(bookings_group)
    app.cli.add_command(analytics_group)
