"""Collection access level rules (pure functions)."""

import pytest

from app.services.access import resolve_access_level, satisfies


@pytest.mark.parametrize(
    ("role", "is_owner", "granted", "expected"),
    [
        ("admin", False, None, "edit"),
        ("merchant", True, None, "edit"),
        ("user", True, "view", "edit"),
        ("merchant", False, "edit", "edit"),
        ("user", False, "view", "view"),
        ("merchant", False, None, None),
        ("user", False, "owner", None),
    ],
)
def test_resolve_access_level(role, is_owner, granted, expected):
    assert resolve_access_level(role, is_owner, granted) == expected


def test_edit_satisfies_view():
    assert satisfies("edit", "view")
    assert satisfies("edit", "edit")


def test_view_does_not_satisfy_edit():
    assert satisfies("view", "view")
    assert not satisfies("view", "edit")


def test_no_access_satisfies_nothing():
    assert not satisfies(None, "view")
