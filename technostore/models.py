from typing import Any, Optional

from eth_utils import to_bytes
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Product(BaseModel):
    name: str
    quantity: int
    price: int  # token units per item, immutable once listed


class RefundPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    window_blocks: int = Field(default=100, ge=0)
    refund_percent: int = Field(default=80, ge=0, le=100)  # the remaining 20 % is kept as a handling fee
    version: str = "1"

    def refund_for(self, price: int) -> int:
        return price * self.refund_percent // 100


class PermitSignature(BaseModel):
    """ECDSA signature components of a signed permit."""

    model_config = ConfigDict(frozen=True)

    v: int
    r: str  # 0x-prefixed, 32 bytes
    s: str  # 0x-prefixed, 32 bytes

    @field_validator("v")
    @classmethod
    def _normalize_v(cls, v: int) -> int:
        if v in (0, 1):
            v += 27
        if v not in (27, 28):
            raise ValueError(f"v must be 27 or 28, got {v}")
        return v

    @field_validator("r", "s")
    @classmethod
    def _check_word(cls, value: str) -> str:
        raw = to_bytes(hexstr=value)
        if len(raw) != 32:
            raise ValueError("signature component must be 32 bytes")
        return "0x" + raw.hex()

    @classmethod
    def from_signature(cls, signature: bytes | str) -> "PermitSignature":
        """Split a 65-byte ``r || s || v`` signature into its components."""
        raw = to_bytes(hexstr=signature) if isinstance(signature, str) else bytes(signature)
        if len(raw) != 65:
            raise ValueError(f"expected a 65-byte signature, got {len(raw)} bytes")
        return cls(v=raw[64], r="0x" + raw[:32].hex(), s="0x" + raw[32:64].hex())

    @property
    def vrs(self) -> tuple[int, int, int]:
        return self.v, int(self.r, 16), int(self.s, 16)


# ── Events ───────────────────────────────────────────────────────────────────

class ProductAdded(BaseModel):
    name: str
    quantity: int


class ProductBought(BaseModel):
    name: str
    buyer: str


class ProductRefunded(BaseModel):
    name: str
    buyer: str


class Transfer(BaseModel):
    sender: str
    recipient: str
    value: int


class Approval(BaseModel):
    owner: str
    spender: str
    value: int


class LogEntry(BaseModel):
    address: str
    block_number: int
    log_index: int
    event: str
    args: dict[str, Any]


class Receipt(BaseModel):
    block_number: int
    timestamp: int
    events: list[LogEntry]


# ── Response models ──────────────────────────────────────────────────────────

class ProductView(BaseModel):
    index: int
    name: str
    quantity: int
    price: int
    buyers: Optional[list[str]] = None


class PurchaseView(BaseModel):
    product: str
    buyer: str
    purchased_at: int  # 0 when there is no open purchase
    refundable_until: Optional[int] = None


class StoreInfo(BaseModel):
    address: str
    owner: str
    token: str
    chain_id: int
    height: int
    timestamp: int
    product_count: int
    refund_policy: RefundPolicy


# ── Request models ───────────────────────────────────────────────────────────

class AddProductRequest(BaseModel):
    name: str
    quantity: int
    price: int


class BuyRequest(BaseModel):
    amount: int
    deadline: int
    signature: PermitSignature


class SignPermitRequest(BaseModel):
    owner: str
    value: int
    deadline: int
    spender: Optional[str] = None  # defaults to the store
