"""Organization service - lookups plus orphan detection.

An orphan is an organization that no profile references. The only way to
produce one is the manual fallback of provisioning failing between its two
writes, so orphans are detected whenever an organization is loaded, adopted
by the same user's next provisioning attempt, and swept by the CLI after a
grace period.
"""

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from swivel.core.config import settings
from swivel.core.structured_logging import build_log_context
from swivel.db.models import Organization, Profile
from swivel.utils import utcnow

logger = logging.getLogger(__name__)


def _has_profiles_clause():
    return exists(select(Profile.id).where(Profile.organization_id == Organization.id))


def count_profiles(db: Session, org_id: UUID) -> int:
    return db.query(Profile).filter(Profile.organization_id == org_id).count()


def get_org_by_id(db: Session, org_id: UUID) -> Organization | None:
    """Get organization by ID, logging a warning if it turns out to be orphaned."""
    org = db.query(Organization).filter(Organization.id == org_id).first()
    if org is not None and count_profiles(db, org.id) == 0:
        logger.warning(
            "Organization loaded without any profile (orphan)",
            extra=build_log_context(org_id=org.id, user_id=org.created_by_user_id),
        )
    return org


def get_profile(db: Session, user_id: UUID) -> Profile | None:
    return db.query(Profile).filter(Profile.id == user_id).first()


def find_adoptable_orphan(db: Session, user_id: UUID) -> Organization | None:
    """Most recent orphan created by this user, reusable on a provisioning retry."""
    return (
        db.query(Organization)
        .filter(
            Organization.created_by_user_id == user_id,
            ~_has_profiles_clause(),
        )
        .order_by(Organization.created_at.desc())
        .first()
    )


def find_orphaned_orgs(db: Session, older_than_hours: int | None = None) -> list[Organization]:
    """
    List organizations with zero profiles created before the grace cutoff.

    Args:
        older_than_hours: Grace period; defaults to ORPHAN_ORG_GRACE_HOURS
    """
    hours = settings.ORPHAN_ORG_GRACE_HOURS if older_than_hours is None else older_than_hours
    cutoff = utcnow() - timedelta(hours=hours)
    return (
        db.query(Organization)
        .filter(~_has_profiles_clause(), Organization.created_at <= cutoff)
        .order_by(Organization.created_at)
        .all()
    )


def sweep_orphaned_orgs(
    db: Session,
    older_than_hours: int | None = None,
    dry_run: bool = False,
) -> list[UUID]:
    """
    Delete orphaned organizations past the grace period.

    Returns:
        IDs of the organizations removed (or that would be, on dry run)
    """
    orphans = find_orphaned_orgs(db, older_than_hours)
    removed = [org.id for org in orphans]
    if dry_run or not orphans:
        return removed

    for org in orphans:
        db.delete(org)
    db.commit()
    logger.info("Swept %d orphaned organization(s)", len(removed))
    return removed
