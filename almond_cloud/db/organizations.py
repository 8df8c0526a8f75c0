"""Organization lookup and version visibility."""

from typing import Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from almond_cloud.db.models import Organization

# Scope of an administrator organization: sees every developer version
ADMIN_SCOPE = -1


def get_by_developer_key(db: Session, developer_key: Optional[str]) -> Optional[Organization]:
    if not developer_key:
        return None
    return db.query(Organization).filter(Organization.developer_key == developer_key).first()


def scope_of(org: Optional[Organization]) -> Optional[int]:
    """
    Authorization scope of an organization.

    None for anonymous callers, ADMIN_SCOPE for administrators, else the
    organization id.
    """
    if org is None:
        return None
    if org.is_admin:
        return ADMIN_SCOPE
    return org.id


def visible_version(model, scope: Optional[int]):
    """
    SQL expression for the version of ``model`` visible to ``scope``.

    ``model`` is any mapped class with ``owner``, ``developer_version`` and
    ``approved_version`` columns. Rows where the expression is NULL are not
    visible at all.
    """
    if scope == ADMIN_SCOPE:
        return model.developer_version
    if scope is None:
        return model.approved_version
    return case(
        (model.owner == scope, model.developer_version),
        else_=model.approved_version,
    )
