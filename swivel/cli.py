"""CLI tools for Swivel administration."""

import click
from sqlalchemy.exc import SQLAlchemyError

from swivel.db.session import SessionLocal
from swivel.services import auth_service, org_service


@click.group()
def cli():
    """Swivel CLI tools."""
    pass


@cli.command()
@click.option("--older-than-hours", type=int, default=None, help="Grace period (default ORPHAN_ORG_GRACE_HOURS)")
@click.option("--dry-run", is_flag=True, help="List orphans without deleting them")
def sweep_orphans(older_than_hours: int | None, dry_run: bool):
    """
    Delete organizations left without any profile by an interrupted setup.

    Example:
        python -m swivel.cli sweep-orphans --dry-run
    """
    db = SessionLocal()
    try:
        removed = org_service.sweep_orphaned_orgs(db, older_than_hours, dry_run=dry_run)
        if not removed:
            click.echo("✓ No orphaned organizations")
            return

        verb = "Would remove" if dry_run else "Removed"
        click.echo(f"✓ {verb} {len(removed)} orphaned organization(s)")
        for org_id in removed:
            click.echo(f"  {org_id}")

    except SQLAlchemyError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m swivel.cli revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = auth_service.get_user_by_email(db, email)
        if not user:
            click.echo(f"❌ User not found: {email}")
            raise SystemExit(1)

        old_version = user.token_version
        auth_service.revoke_sessions(db, user)

        click.echo(f"✓ Revoked all sessions for {user.email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except SQLAlchemyError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
