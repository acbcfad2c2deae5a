"""
Fungible token with the EIP-2612 ``permit`` extension.

This is the ledger asset the store is priced in. Besides plain ERC-20
bookkeeping it accepts an off-line signed ``Permit`` that grants an allowance
without a prior ``approve`` call; each accepted permit consumes the owner's
nonce so the same signature can never be replayed.
"""

import logging
from typing import Optional

from eth_account.messages import SignableMessage

from technostore.chain import Chain, Contract, is_uint256, normalize_address
from technostore.errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InvalidInputs,
    PermitExpired,
    PermitInvalid,
)
from technostore.models import Approval, PermitSignature, Transfer
from technostore.signing import EcdsaRecoverer, IdentityRecoverer, encode_permit

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class PermitToken(Contract):
    _state_fields = ("total_supply", "_balances", "_allowances", "_nonces")

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        name: str,
        symbol: str,
        initial_supply: int,
        version: str = "1",
        decimals: int = 18,
        recoverer: Optional[IdentityRecoverer] = None,
    ) -> None:
        super().__init__(chain, deployer)
        self.name = name
        self.symbol = symbol
        self.version = version
        self.decimals = decimals
        self.total_supply = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self._nonces: dict[str, int] = {}
        self._recoverer = recoverer or EcdsaRecoverer()
        if initial_supply:
            self._mint(normalize_address(deployer), initial_supply)

    # ── reads ────────────────────────────────────────────────────────────────

    def balance_of(self, account: str) -> int:
        return self._balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    def nonces(self, owner: str) -> int:
        return self._nonces.get(normalize_address(owner), 0)

    def permit_message(self, owner: str, spender: str, value: int, nonce: int, deadline: int) -> SignableMessage:
        if not all(is_uint256(word) for word in (value, nonce, deadline)):
            raise InvalidInputs("Permit value, nonce and deadline must fit in 256 bits")
        return encode_permit(
            name=self.name,
            version=self.version,
            chain_id=self.chain.chain_id,
            verifying_contract=self.address,
            owner=normalize_address(owner),
            spender=normalize_address(spender),
            value=value,
            nonce=nonce,
            deadline=deadline,
        )

    @property
    def domain_separator(self) -> bytes:
        # the header of an EIP-712 message is the hashed domain
        return self.permit_message(ZERO_ADDRESS, ZERO_ADDRESS, 0, 0, 0).header

    # ── writes ───────────────────────────────────────────────────────────────

    def transfer(self, caller: str, to: str, value: int) -> bool:
        with self.chain.transaction():
            self._transfer(normalize_address(caller), normalize_address(to), value)
        return True

    def approve(self, caller: str, spender: str, value: int) -> bool:
        with self.chain.transaction():
            self._approve(normalize_address(caller), normalize_address(spender), value)
        return True

    def transfer_from(self, caller: str, owner: str, to: str, value: int) -> bool:
        caller, owner = normalize_address(caller), normalize_address(owner)
        with self.chain.transaction():
            allowed = self._allowances.get((owner, caller), 0)
            if allowed < value:
                raise InsufficientAllowance(
                    f"{caller} may spend {allowed} of {owner}'s tokens, needs {value}"
                )
            self._approve(owner, caller, allowed - value)
            self._transfer(owner, normalize_address(to), value)
        return True

    def permit(self, owner: str, spender: str, value: int, deadline: int, signature: PermitSignature) -> None:
        """Grant ``spender`` an allowance of ``value`` on behalf of ``owner``.

        Anyone may submit the permit; the signature is the authorization.
        Raises ``PermitExpired`` once the block timestamp is past ``deadline``,
        ``PermitInvalid`` if the signature does not recover to ``owner`` and
        ``InvalidInputs`` for values that cannot be encoded as uint256.
        """
        owner, spender = normalize_address(owner), normalize_address(spender)
        with self.chain.transaction() as tx:
            if tx.timestamp > deadline:
                raise PermitExpired(f"Permit deadline {deadline} passed at {tx.timestamp}")

            nonce = self._nonces.get(owner, 0)
            message = self.permit_message(owner, spender, value, nonce, deadline)
            signer = self._recoverer.recover_identity(message, signature)
            if signer != owner:
                raise PermitInvalid(f"Permit signed by {signer}, expected {owner}")

            self._nonces[owner] = nonce + 1
            self._approve(owner, spender, value)

    # ── internals ────────────────────────────────────────────────────────────

    def _mint(self, to: str, value: int) -> None:
        self.total_supply += value
        self._balances[to] = self._balances.get(to, 0) + value
        logger.debug("Minted %d %s to %s", value, self.symbol, to)

    def _transfer(self, sender: str, recipient: str, value: int) -> None:
        if value < 0:
            raise InvalidInputs("Transfer value must not be negative")
        balance = self._balances.get(sender, 0)
        if balance < value:
            raise InsufficientBalance(f"{sender} holds {balance}, needs {value}")
        self._balances[sender] = balance - value
        self._balances[recipient] = self._balances.get(recipient, 0) + value
        self.chain.emit(self.address, Transfer(sender=sender, recipient=recipient, value=value))
        logger.debug("Transferred %d %s from %s to %s", value, self.symbol, sender, recipient)

    def _approve(self, owner: str, spender: str, value: int) -> None:
        if value < 0:
            raise InvalidInputs("Allowance must not be negative")
        self._allowances[(owner, spender)] = value
        self.chain.emit(self.address, Approval(owner=owner, spender=spender, value=value))
