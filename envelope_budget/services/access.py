import structlog

from envelope_budget.models.actor import Actor
from envelope_budget.services.errors import AuthorizationError
from envelope_budget.utils.constants import ROLES

logger = structlog.get_logger(__name__)


def require_member(actor: Actor | None) -> Actor:
    """Any authenticated user (admin or member)."""
    if actor is None or actor.role not in ROLES:
        logger.warning("access_denied", reason="unauthenticated")
        raise AuthorizationError("Unauthorized")
    return actor


def require_admin(actor: Actor | None) -> Actor:
    require_member(actor)
    if not actor.is_admin:
        logger.warning("access_denied", user_id=actor.user_id, required="admin")
        raise AuthorizationError("Forbidden - Admin access required")
    return actor


def require_owner_or_admin(actor: Actor | None, owner_id: str) -> Actor:
    require_member(actor)
    if not actor.is_admin and actor.user_id != owner_id:
        logger.warning("access_denied", user_id=actor.user_id, required="owner")
        raise AuthorizationError("Only the creator or an admin can change this transaction.")
    return actor
