"""Order status transitions.

Two actors move orders. The payment system drives an order from ``draft``
through ``pending_payment`` to ``confirmed`` (or ``cancelled``). Merchants only
take over once payment has completed. The ``orders_validate_status`` trigger
enforces the union of both tables in the database.
"""

from app.core.exceptions import DomainError

FULFILLMENT_STATUSES: tuple[str, ...] = ("confirmed", "preparing", "shipped", "delivered")
PRE_PAYMENT_STATUSES: tuple[str, ...] = ("draft", "pending_payment")
SALE_STATUSES: tuple[str, ...] = ("shipped", "delivered")

PAYMENT_TRANSITIONS: dict[str, list[str]] = {
    "draft": ["pending_payment", "cancelled"],
    "pending_payment": ["confirmed", "cancelled"],
}

MERCHANT_TRANSITIONS: dict[str, list[str]] = {
    status: [s for s in FULFILLMENT_STATUSES if s != status] + ["cancelled"]
    for status in FULFILLMENT_STATUSES
}
# Reopening a cancelled order needs a prior confirmation, see allowed_merchant_targets
MERCHANT_TRANSITIONS["cancelled"] = list(FULFILLMENT_STATUSES)


class OrderTransitionError(DomainError):
    title = "Invalid order transition"

    def __init__(self, current: str, requested: str, allowed: list[str]):
        super().__init__(f"Cannot transition order from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested
        self.allowed = allowed

    @property
    def detail(self) -> dict:
        return {"message": self.message, "allowed": self.allowed}


def allowed_payment_targets(current: str) -> list[str]:
    return list(PAYMENT_TRANSITIONS.get(current, []))


def allowed_merchant_targets(current: str, was_confirmed: bool) -> list[str]:
    if current in PRE_PAYMENT_STATUSES:
        return []
    if current == "cancelled" and not was_confirmed:
        return []
    return list(MERCHANT_TRANSITIONS.get(current, []))


def validate_payment_transition(current: str, requested: str) -> None:
    allowed = allowed_payment_targets(current)
    if requested not in allowed:
        raise OrderTransitionError(current, requested, allowed)


def validate_merchant_transition(current: str, requested: str, was_confirmed: bool) -> None:
    allowed = allowed_merchant_targets(current, was_confirmed)
    if requested not in allowed:
        raise OrderTransitionError(current, requested, allowed)


def counts_as_sale(previous: str, new: str, already_shipped: bool) -> bool:
    """True on the first move of an order into shipped or delivered."""
    return new in SALE_STATUSES and previous not in SALE_STATUSES and not already_shipped
