from __future__ import annotations

import pytest

from stockdb.apps.accounts import services
from stockdb.apps.accounts.models import AccountRole, Actor
from stockdb.errors import AuthorizationError, ValidationError


def test_staff_and_admin_may_write(staff, admin):
    assert services.require_staff(staff, action="receive stock") is staff
    assert services.require_staff(admin, action="receive stock") is admin


def test_viewer_is_read_only(viewer):
    with pytest.raises(AuthorizationError) as exc:
        services.require_staff(viewer, action="receive stock")
    assert exc.value.context["user_id"] == viewer.user_id


def test_admin_only_actions(staff, admin):
    assert services.require_admin(admin, action="approve audits") is admin
    with pytest.raises(AuthorizationError):
        services.require_admin(staff, action="approve audits")


def test_missing_actor_is_a_validation_error():
    with pytest.raises(ValidationError):
        services.require_staff(None, action="sell")
    with pytest.raises(ValidationError):
        services.require_admin(Actor(user_id="", role=AccountRole.ADMIN), action="sell")


def test_actor_as_dict(staff):
    assert staff.as_dict() == {"user_id": "staff-1", "role": "STAFF"}
