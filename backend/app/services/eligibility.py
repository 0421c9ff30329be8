"""Wallet eligibility rules for gated categories and coupons.

Rules are stored as JSON::

    {"groups": [{"operator": "AND", "rules": [
        {"type": "whitelist", "value": "vip-list"},
        {"type": "token", "value": "<mint>", "quantity": 5}
    ]}]}

Every group must pass. Inside a group the rules combine with the group's
operator (``AND`` unless ``OR`` is given). Whitelist rules are answered from
``whitelist_entries``; token and NFT rules need on-chain data and go to a
holdings verifier, which denies by default.
"""

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DomainError
from app.models.coupon import WhitelistEntry

logger = logging.getLogger(__name__)

RULE_TYPES = ("whitelist", "token", "nft")

WhitelistLookup = Callable[[str, str], Awaitable[bool]]
HoldingsVerifier = Callable[[str, str, str, int], Awaitable[bool]]


class EligibilityError(DomainError):
    status = 403
    title = "Not eligible"


async def deny_holdings(rule_type: str, value: str, wallet: str, quantity: int) -> bool:
    logger.info("No holdings verifier configured, denying %s rule %s", rule_type, value)
    return False


def normalize_groups(rules: dict | None) -> list[dict]:
    """Return the rule groups, accepting a bare ``{"rules": [...]}`` as one group."""
    if not rules:
        return []
    if "groups" in rules:
        return [g for g in rules["groups"] or [] if g.get("rules")]
    if rules.get("rules"):
        return [{"operator": rules.get("operator", "AND"), "rules": rules["rules"]}]
    return []


def has_rules(rules: dict | None) -> bool:
    return bool(normalize_groups(rules))


async def check_rule(
    rule: dict,
    wallet: str,
    whitelist_lookup: WhitelistLookup,
    holdings_verifier: HoldingsVerifier = deny_holdings,
) -> bool:
    rule_type = rule.get("type")
    value = str(rule.get("value", ""))
    if rule_type == "whitelist":
        return await whitelist_lookup(value, wallet)
    if rule_type in ("token", "nft"):
        quantity = int(rule.get("quantity") or 1)
        return await holdings_verifier(rule_type, value, wallet, quantity)
    logger.warning("Unknown eligibility rule type %r", rule_type)
    return False


async def evaluate_rules(
    rules: dict | None,
    wallet: str | None,
    whitelist_lookup: WhitelistLookup,
    holdings_verifier: HoldingsVerifier = deny_holdings,
) -> bool:
    groups = normalize_groups(rules)
    if not groups:
        return True
    if not wallet:
        return False

    for group in groups:
        results = [
            await check_rule(rule, wallet, whitelist_lookup, holdings_verifier)
            for rule in group["rules"]
        ]
        operator = str(group.get("operator") or "AND").upper()
        passed = any(results) if operator == "OR" else all(results)
        if not passed:
            return False
    return True


def make_whitelist_lookup(db: AsyncSession) -> WhitelistLookup:
    async def _lookup(list_name: str, wallet: str) -> bool:
        result = await db.execute(
            select(WhitelistEntry.id).where(
                WhitelistEntry.list_name == list_name,
                WhitelistEntry.wallet_address == wallet,
            )
        )
        return result.first() is not None

    return _lookup


async def ensure_eligible(
    db: AsyncSession,
    rules: dict | None,
    wallet: str | None,
    holdings_verifier: HoldingsVerifier = deny_holdings,
) -> None:
    if not has_rules(rules):
        return
    if not wallet:
        raise EligibilityError("A verified wallet is required for this item")
    if not await evaluate_rules(rules, wallet, make_whitelist_lookup(db), holdings_verifier):
        raise EligibilityError("Wallet does not meet the eligibility requirements")
