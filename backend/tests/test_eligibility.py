"""Wallet eligibility rule evaluation (lookups faked in memory)."""

import pytest

from app.services.eligibility import (
    EligibilityError,
    ensure_eligible,
    evaluate_rules,
    has_rules,
    normalize_groups,
)
from tests.helpers import random_wallet

WALLET = random_wallet()
WHITELISTS = {("vip", WALLET), ("early", WALLET)}


async def _lookup(list_name: str, wallet: str) -> bool:
    return (list_name, wallet) in WHITELISTS


async def _holds_five(rule_type: str, value: str, wallet: str, quantity: int) -> bool:
    return quantity <= 5


def test_normalize_groups_accepts_bare_rules():
    rules = {"operator": "OR", "rules": [{"type": "whitelist", "value": "vip"}]}
    assert normalize_groups(rules) == [rules]


def test_normalize_groups_drops_empty_groups():
    assert normalize_groups({"groups": [{"rules": []}]}) == []
    assert not has_rules({"groups": []})
    assert not has_rules(None)


async def test_no_rules_always_pass():
    assert await evaluate_rules(None, None, _lookup)


async def test_rules_need_a_wallet():
    rules = {"rules": [{"type": "whitelist", "value": "vip"}]}
    assert not await evaluate_rules(rules, None, _lookup)


async def test_and_group_requires_every_rule():
    rules = {
        "groups": [
            {
                "operator": "AND",
                "rules": [
                    {"type": "whitelist", "value": "vip"},
                    {"type": "whitelist", "value": "missing"},
                ],
            }
        ]
    }
    assert not await evaluate_rules(rules, WALLET, _lookup)


async def test_or_group_needs_one_rule():
    rules = {
        "groups": [
            {
                "operator": "or",
                "rules": [
                    {"type": "whitelist", "value": "missing"},
                    {"type": "whitelist", "value": "early"},
                ],
            }
        ]
    }
    assert await evaluate_rules(rules, WALLET, _lookup)


async def test_every_group_must_pass():
    rules = {
        "groups": [
            {"rules": [{"type": "whitelist", "value": "vip"}]},
            {"rules": [{"type": "whitelist", "value": "missing"}]},
        ]
    }
    assert not await evaluate_rules(rules, WALLET, _lookup)


async def test_holdings_denied_without_verifier():
    rules = {"rules": [{"type": "token", "value": "mint", "quantity": 1}]}
    assert not await evaluate_rules(rules, WALLET, _lookup)


async def test_holdings_use_verifier_and_quantity():
    few = {"rules": [{"type": "nft", "value": "mint", "quantity": 3}]}
    many = {"rules": [{"type": "nft", "value": "mint", "quantity": 9}]}
    assert await evaluate_rules(few, WALLET, _lookup, _holds_five)
    assert not await evaluate_rules(many, WALLET, _lookup, _holds_five)


async def test_unknown_rule_type_fails():
    rules = {"rules": [{"type": "karma", "value": "1"}]}
    assert not await evaluate_rules(rules, WALLET, _lookup)


async def test_ensure_eligible_skips_db_without_rules():
    # No rules means no whitelist lookup, so no session is needed
    await ensure_eligible(None, {"groups": []}, None)  # type: ignore[arg-type]


async def test_ensure_eligible_requires_wallet():
    with pytest.raises(EligibilityError) as exc_info:
        await ensure_eligible(None, {"rules": [{"type": "whitelist", "value": "vip"}]}, None)  # type: ignore[arg-type]
    assert exc_info.value.status == 403
