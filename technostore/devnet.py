"""
Local deployment: a fresh chain, funded dev accounts, the token and the store.
"""

import logging
from dataclasses import dataclass

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import keccak

from technostore.chain import Chain, normalize_address
from technostore.config import Settings
from technostore.engine import TechnoStore
from technostore.errors import InvalidInputs
from technostore.models import RefundPolicy
from technostore.token import PermitToken

logger = logging.getLogger(__name__)


def dev_accounts(seed: str, count: int) -> list[LocalAccount]:
    """Deterministic accounts derived from ``seed``; never use them on a real network."""
    return [Account.from_key(keccak(text=f"{seed}:{i}")) for i in range(count)]


@dataclass
class Devnet:
    chain: Chain
    accounts: list[LocalAccount]
    token: PermitToken
    store: TechnoStore

    @property
    def owner(self) -> LocalAccount:
        return self.accounts[0]

    @property
    def customers(self) -> list[LocalAccount]:
        return self.accounts[1:]

    def account(self, address: str) -> LocalAccount:
        address = normalize_address(address)
        for acct in self.accounts:
            if acct.address == address:
                return acct
        raise InvalidInputs(f"{address} is not a devnet account")


def deploy(settings: Settings) -> Devnet:
    if settings.dev_account_count < 1:
        raise ValueError("dev_account_count must be at least 1")

    chain = Chain(
        chain_id=settings.chain_id,
        genesis_timestamp=settings.genesis_timestamp,
        block_interval=settings.block_interval,
    )
    accounts = dev_accounts(settings.dev_account_seed, settings.dev_account_count)
    owner = accounts[0].address

    token = PermitToken(
        chain,
        owner,
        name=settings.token_name,
        symbol=settings.token_symbol,
        version=settings.token_version,
        initial_supply=settings.token_supply,
    )
    store = TechnoStore(
        chain,
        owner,
        token,
        policy=RefundPolicy(
            window_blocks=settings.refund_window_blocks,
            refund_percent=settings.refund_percent,
        ),
    )
    logger.info("Devnet %d ready: token %s, store %s", chain.chain_id, token.address, store.address)
    return Devnet(chain=chain, accounts=accounts, token=token, store=store)
