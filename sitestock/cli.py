import click
from flask.cli import with_appcontext
from sqlalchemy import func

from sitestock.extensions import db
from sitestock.models.account import Account
from sitestock.models.user import User
from sitestock.models.team_member import TeamMember, ROLE_OWNER, ROLE_CHOICES, STATUS_ACTIVE
from sitestock.services.common import ServiceError
from sitestock.utils.helpers import utcnow


def _get_or_create_account(name: str) -> Account:
    account = db.session.query(Account).filter(Account.name == name).one_or_none()
    if account:
        return account
    account = Account(name=name, is_active=True)
    db.session.add(account)
    db.session.flush()
    return account


def _live_member(account_id: int, email: str):
    return (
        db.session.query(TeamMember)
        .filter(
            TeamMember.account_id == account_id,
            func.lower(TeamMember.email) == email.strip().lower(),
            TeamMember.deleted_at.is_(None),
        )
        .one_or_none()
    )


def _account_owner(account_id: int) -> TeamMember:
    owner = (
        db.session.query(TeamMember)
        .filter(
            TeamMember.account_id == account_id,
            TeamMember.role == ROLE_OWNER,
            TeamMember.status == STATUS_ACTIVE,
            TeamMember.deleted_at.is_(None),
        )
        .order_by(TeamMember.id.asc())
        .first()
    )
    if owner is None:
        raise click.ClickException(f"Account {account_id} has no active owner")
    return owner


@click.group()
def bootstrap():
    """Bootstrap helpers."""


@bootstrap.command("owner")
@click.option("--account-name", required=True)
@click.option("--email", required=True)
@click.option("--password", required=True)
@with_appcontext
def bootstrap_owner(account_name, email, password):
    # fail fast if user exists
    if db.session.query(User).filter(func.lower(User.email) == email.strip().lower()).count():
        raise click.ClickException("User already exists")

    account = _get_or_create_account(account_name)

    user = User(email=email.strip(), is_active=True)
    user.set_password(password)
    user.account_id = account.id
    db.session.add(user)
    db.session.flush()

    db.session.add(TeamMember(
        account_id=account.id,
        user_id=user.id,
        email=user.email,
        role=ROLE_OWNER,
        status=STATUS_ACTIVE,
        accepted_at=utcnow(),
    ))
    db.session.commit()

    click.echo(f"Bootstrap complete: account_id={account.id} owner_user_id={user.id} email={user.email}")


@click.group()
def members():
    """Team member role ops."""


@members.command("set-role")
@click.option("--account-id", type=int, required=True)
@click.option("--email", required=True)
@click.option("--role", type=click.Choice(list(ROLE_CHOICES)), required=True)
@with_appcontext
def members_set_role(account_id, email, role):
    m = _live_member(account_id, email)
    if not m:
        raise click.ClickException("Membership not found")

    # Safety rail: cannot demote last owner
    owners = (
        db.session.query(TeamMember)
        .filter_by(account_id=account_id, role=ROLE_OWNER, deleted_at=None)
        .count()
    )
    if m.role == ROLE_OWNER and role != ROLE_OWNER and owners <= 1:
        raise click.ClickException("Refused: cannot demote the last owner of this account")

    m.role = role
    db.session.commit()
    click.echo(f"Set role of {email} in account {account_id} to {role}")


@click.group()
def materials():
    """Material catalog ops."""


@materials.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--account-id", type=int, required=True)
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--limit", type=int, default=None)
@with_appcontext
def materials_import(path, account_id, dry_run, limit):
    from sitestock.services.catalog_import import read_catalog, import_catalog

    actor = _account_owner(account_id)
    try:
        df = read_catalog(path)
        stats = import_catalog(db.session, actor, df, dry_run=dry_run, limit=limit)
    except ServiceError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    if dry_run:
        db.session.rollback()
    else:
        db.session.commit()
    click.echo(
        f"{'[dry-run] ' if dry_run else ''}created={stats['created']} "
        f"updated={stats['updated']} failed={stats['failed']}"
    )


def register_cli(app):
    app.cli.add_command(bootstrap)
    app.cli.add_command(members)
    app.cli.add_command(materials)
