"""
EIP-712 permit messages, off-line signing and signer recovery.

Customers sign a ``Permit`` struct bound to the token's domain
(name, version, chainId, verifyingContract). The token recovers the signer
through an ``IdentityRecoverer`` so the scheme can be swapped without touching
the token or the store.
"""

from typing import Protocol

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import BadSignature

from technostore.errors import PermitInvalid
from technostore.models import PermitSignature

# secp256k1 group order; signatures with s above half of it are malleable
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

PERMIT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


def permit_typed_data(
    *,
    name: str,
    version: str,
    chain_id: int,
    verifying_contract: str,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
) -> dict:
    return {
        "types": PERMIT_TYPES,
        "primaryType": "Permit",
        "domain": {
            "name": name,
            "version": version,
            "chainId": chain_id,
            "verifyingContract": verifying_contract,
        },
        "message": {
            "owner": owner,
            "spender": spender,
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        },
    }


def encode_permit(**fields) -> SignableMessage:
    return encode_typed_data(full_message=permit_typed_data(**fields))


class IdentityRecoverer(Protocol):
    def recover_identity(self, message: SignableMessage, signature: PermitSignature) -> str:
        ...


class EcdsaRecoverer:
    """Recovers the signing address with secp256k1 public-key recovery."""

    def recover_identity(self, message: SignableMessage, signature: PermitSignature) -> str:
        v, r, s = signature.vrs
        if not 0 < r < SECP256K1_N or not 0 < s <= SECP256K1_N // 2:
            raise PermitInvalid("Signature components out of range")
        try:
            return Account.recover_message(message, vrs=(v, r, s))
        except (BadSignature, ValueError) as exc:
            raise PermitInvalid(f"Unrecoverable signature: {exc}") from exc


def _word(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def sign_permit(account: LocalAccount, token, spender: str, value: int, deadline: int) -> PermitSignature:
    """Sign a permit for ``token`` with the account's current nonce."""
    message = token.permit_message(
        owner=account.address,
        spender=spender,
        value=value,
        nonce=token.nonces(account.address),
        deadline=deadline,
    )
    signed = account.sign_message(message)
    return PermitSignature(v=signed.v, r=_word(signed.r), s=_word(signed.s))
