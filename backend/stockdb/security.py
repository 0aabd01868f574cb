# backend/stockdb/security.py

"""
Request identity helpers for the HTTP adapter.

Authentication is done upstream; the gateway forwards the acting user as
`X-Actor-Id` / `X-Actor-Role` headers and these dependencies turn them
into an `Actor` for the services.
"""

from __future__ import annotations

from typing import Callable, Set, Union

from fastapi import Depends, Header, HTTPException, status

from stockdb.apps.accounts.models import AccountRole, Actor


def get_current_actor(
    x_actor_id: str = Header(..., alias="X-Actor-Id"),
    x_actor_role: str = Header(AccountRole.VIEWER.value, alias="X-Actor-Role"),
) -> Actor:
    user_id = x_actor_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header is empty.",
        )
    try:
        role = AccountRole(x_actor_role.strip().upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role: {x_actor_role}",
        )
    return Actor(user_id=user_id, role=role)


def require_roles(
    *allowed_roles: Union[AccountRole, str],
) -> Callable[[Actor], Actor]:
    """
    Dependency factory to enforce that the acting user has one of the given roles.

    Usage:
        @router.get(...)
        def endpoint(actor: Actor = Depends(require_roles(AccountRole.ADMIN))):
            ...

    ADMIN always passes. Services repeat their own checks; this only
    rejects early at the edge.
    """
    normalised_roles: Set[AccountRole] = set()
    for r in allowed_roles:
        if isinstance(r, AccountRole):
            normalised_roles.add(r)
        else:
            try:
                normalised_roles.add(AccountRole(r))
            except ValueError:
                raise ValueError(f"Unknown role in require_roles: {r}")

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.is_admin:
            return actor
        if actor.role not in normalised_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient privileges",
            )
        return actor

    return dependency


WRITE_ROLES = (AccountRole.ADMIN, AccountRole.STAFF)
