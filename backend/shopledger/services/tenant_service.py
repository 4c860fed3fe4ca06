"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every request is scoped to an organization (g.org_id, set by @require_auth).
Shop and item ids from client input must be validated against it; anything
outside the organization is reported exactly like a missing record so
existence in another tenant is never revealed.

USAGE:
    from shopledger.services.tenant_service import require_shop_in_org, get_org_shop_ids

    shop = require_shop_in_org(shop_id, g.org_id)
    shop_ids = get_org_shop_ids(g.org_id)
"""

import logging

from ..extensions import db
from ..models import Item, Organization, Shop
from ..validation import NotFoundError
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


class TenantAccessError(NotFoundError):
    """Raised when a record is missing or belongs to another organization."""


def require_shop_in_org(shop_id: int, org_id: int) -> Shop:
    """
    Validate that a shop belongs to the specified organization.

    Raises:
        TenantAccessError if shop doesn't exist or belongs to different org
    """
    shop = db.session.query(Shop).filter_by(id=shop_id).first()

    if not shop:
        raise TenantAccessError("Shop not found")

    if shop.org_id != org_id:
        _log_cross_tenant_attempt(f"Shop {shop_id} belongs to org {shop.org_id}, not {org_id}")
        raise TenantAccessError("Shop not found")  # Don't reveal it exists in another org

    return shop


def require_item_in_org(item_id: int, org_id: int, *, lock: bool = False) -> Item:
    """
    Load an item and validate it belongs to one of the organization's shops.

    lock=True selects the row FOR UPDATE (ignored by SQLite).
    """
    query = db.session.query(Item).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()

    if item is None:
        raise TenantAccessError("Item not found")

    shop_org_id = db.session.query(Shop.org_id).filter_by(id=item.shop_id).scalar()
    if shop_org_id != org_id:
        _log_cross_tenant_attempt(f"Item {item_id} belongs to org {shop_org_id}, not {org_id}")
        raise TenantAccessError("Item not found")

    return item


def get_org_shops(org_id: int) -> list[Shop]:
    return db.session.query(Shop).filter_by(org_id=org_id).order_by(Shop.name.asc(), Shop.id.asc()).all()


def get_org_shop_ids(org_id: int) -> set[int]:
    """
    Get set of shop IDs for an organization.

    Useful for quick membership checks without loading full objects.
    """
    rows = db.session.query(Shop.id).filter_by(org_id=org_id).all()
    return {row.id for row in rows}


def resolve_shop_scope(org_id: int, shop_id: int | None = None) -> set[int]:
    """Shops a listing may read: one validated shop, or all of the organization's."""
    if shop_id is not None:
        require_shop_in_org(shop_id, org_id)
        return {shop_id}
    return get_org_shop_ids(org_id)


def validate_org_active(org_id: int) -> Organization:
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def _log_cross_tenant_attempt(reason: str) -> None:
    logger.warning("Cross-tenant access denied: %s", reason)
