"""Wallet identity resolution for wallet-paying buyers.

A request proves control of a wallet in one of two ways:

* ``X-Wallet-Address`` plus an ``X-Wallet-Auth-Token`` whose ``wallet_address``
  claim equals that header
* a bearer JWT carrying a ``wallet_address`` claim
"""

import logging
import re
from dataclasses import dataclass

from jose import JWTError

from app.core.security import decode_wallet_token

logger = logging.getLogger(__name__)

WALLET_ADDRESS_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_valid_wallet_address(address: str | None) -> bool:
    return bool(address) and bool(WALLET_ADDRESS_PATTERN.match(address))


@dataclass(frozen=True)
class WalletIdentity:
    header_wallet: str | None = None
    has_token: bool = False
    jwt_wallet: str | None = None

    def matches(self, wallet: str | None) -> bool:
        if not wallet:
            return False
        header_ok = self.header_wallet is not None and self.header_wallet == wallet
        jwt_ok = self.jwt_wallet is not None and self.jwt_wallet == wallet
        return (header_ok and self.has_token) or jwt_ok

    @property
    def verified_wallet(self) -> str | None:
        if self.jwt_wallet:
            return self.jwt_wallet
        if self.header_wallet and self.has_token:
            return self.header_wallet
        return None


def resolve_wallet_identity(
    header_wallet: str | None,
    header_token: str | None,
    claims: dict | None = None,
) -> WalletIdentity:
    header_wallet = header_wallet.strip() if header_wallet else None
    if header_wallet and not is_valid_wallet_address(header_wallet):
        logger.info("Ignoring malformed X-Wallet-Address header")
        header_wallet = None

    has_token = False
    if header_wallet and header_token:
        try:
            token_claims = decode_wallet_token(header_token)
        except JWTError as exc:
            logger.info("Wallet auth token rejected: %s", exc)
        else:
            has_token = token_claims.get("wallet_address") == header_wallet

    jwt_wallet = (claims or {}).get("wallet_address") or None
    if jwt_wallet and not is_valid_wallet_address(jwt_wallet):
        jwt_wallet = None

    return WalletIdentity(header_wallet=header_wallet, has_token=has_token, jwt_wallet=jwt_wallet)
