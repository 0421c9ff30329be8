"""Order status transition rules."""

import pytest

from app.services.order_lifecycle import (
    OrderTransitionError,
    allowed_merchant_targets,
    allowed_payment_targets,
    counts_as_sale,
    validate_merchant_transition,
    validate_payment_transition,
)


def test_payment_path():
    validate_payment_transition("draft", "pending_payment")
    validate_payment_transition("pending_payment", "confirmed")
    validate_payment_transition("pending_payment", "cancelled")


def test_payment_cannot_skip_pending():
    with pytest.raises(OrderTransitionError) as exc_info:
        validate_payment_transition("draft", "confirmed")
    assert exc_info.value.status == 422
    assert exc_info.value.allowed == ["pending_payment", "cancelled"]


def test_payment_has_no_moves_after_confirmation():
    assert allowed_payment_targets("confirmed") == []
    with pytest.raises(OrderTransitionError):
        validate_payment_transition("confirmed", "cancelled")


def test_merchant_cannot_touch_unpaid_orders():
    assert allowed_merchant_targets("draft", was_confirmed=False) == []
    assert allowed_merchant_targets("pending_payment", was_confirmed=False) == []
    with pytest.raises(OrderTransitionError):
        validate_merchant_transition("pending_payment", "confirmed", was_confirmed=False)


def test_merchant_moves_between_fulfilment_states():
    validate_merchant_transition("confirmed", "shipped", was_confirmed=True)
    validate_merchant_transition("shipped", "preparing", was_confirmed=True)
    validate_merchant_transition("delivered", "cancelled", was_confirmed=True)


def test_merchant_same_status_is_rejected():
    with pytest.raises(OrderTransitionError):
        validate_merchant_transition("shipped", "shipped", was_confirmed=True)


def test_cancelled_reopens_only_after_confirmation():
    assert allowed_merchant_targets("cancelled", was_confirmed=False) == []
    assert "confirmed" in allowed_merchant_targets("cancelled", was_confirmed=True)
    assert "cancelled" not in allowed_merchant_targets("cancelled", was_confirmed=True)


def test_transition_error_detail_lists_allowed_targets():
    err = OrderTransitionError("shipped", "draft", ["delivered"])
    assert err.detail == {
        "message": "Cannot transition order from 'shipped' to 'draft'",
        "allowed": ["delivered"],
    }


@pytest.mark.parametrize(
    ("previous", "new", "already_shipped", "expected"),
    [
        ("confirmed", "shipped", False, True),
        ("preparing", "delivered", False, True),
        ("shipped", "delivered", False, False),
        ("cancelled", "shipped", True, False),
        ("confirmed", "preparing", False, False),
    ],
)
def test_counts_as_sale(previous, new, already_shipped, expected):
    assert counts_as_sale(previous, new, already_shipped) is expected
