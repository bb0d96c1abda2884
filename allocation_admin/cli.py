# allocation_admin/cli.py
import click
from werkzeug.security import generate_password_hash

from .extensions import db
from .model import Allocation, User
from .services.allocation_service import refresh_aggregates


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", required=True)
def create_admin(email, password, name):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        click.echo("Email already exists"); return
    u = User(email=email, name=name, password_hash=generate_password_hash(password), role="admin")
    db.session.add(u); db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")


@click.command("refresh-aggregates")
@click.option("--allocation-id", type=int, default=None, help="Only this allocation.")
@click.option("--recount", is_flag=True, help="Recount tier customers from assignments.")
def refresh_aggregates_command(allocation_id, recount):
    """Recompute cached tier and allocation counts."""
    q = Allocation.query
    if allocation_id is not None:
        q = q.filter_by(id=allocation_id)
    allocations = q.order_by(Allocation.id.asc()).all()
    if not allocations:
        click.echo("No allocations found"); return
    for allocation in allocations:
        refresh_aggregates(allocation, recount_customers=recount)
        click.echo(f"Allocation {allocation.id}: {allocation.total_customers or 0} customers")
    db.session.commit()


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(refresh_aggregates_command)
