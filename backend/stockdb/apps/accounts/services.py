from __future__ import annotations

import logging

from stockdb.errors import AuthorizationError, ValidationError

from .models import Actor

logger = logging.getLogger(__name__)


def _check_actor(actor: Actor) -> None:
    if actor is None or not actor.user_id:
        raise ValidationError("An acting user is required for this operation.")


def require_staff(actor: Actor, *, action: str) -> Actor:
    """Allow STAFF and ADMIN; reject read-only users."""
    _check_actor(actor)
    if not actor.can_write:
        logger.warning(
            "Write rejected for read-only actor",
            extra={"user_id": actor.user_id, "role": actor.role.value, "action": action},
        )
        raise AuthorizationError(
            f"Role {actor.role.value} may not {action}.",
            user_id=actor.user_id,
        )
    return actor


def require_admin(actor: Actor, *, action: str) -> Actor:
    _check_actor(actor)
    if not actor.is_admin:
        logger.warning(
            "Admin-only action rejected",
            extra={"user_id": actor.user_id, "role": actor.role.value, "action": action},
        )
        raise AuthorizationError(
            f"Only administrators may {action}.",
            user_id=actor.user_id,
        )
    return actor
