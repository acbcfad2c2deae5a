"""
The marketplace engine.

Every state-changing call runs inside one ledger transaction and follows the
same order:

  1. local checks (ownership, catalog, purchase records) before anything else;
  2. the token calls that can fail (permit, transfer_from / transfer);
  3. local state is committed only after those succeed.

A failure at any step rolls the whole transaction back, so inventory is never
decremented without the payment having settled, nor the other way round.
"""

import logging
from typing import Optional

from technostore.chain import Chain, Contract, is_uint256, normalize_address
from technostore.errors import (
    InsufficientAmount,
    InvalidInputs,
    NotOwner,
    ProductAlreadyBought,
    ProductNotBought,
    RefundExpired,
)
from technostore.models import (
    PermitSignature,
    Product,
    ProductAdded,
    ProductBought,
    ProductRefunded,
    ProductView,
    PurchaseView,
    Receipt,
    RefundPolicy,
    StoreInfo,
)
from technostore.store import Catalog
from technostore.token import PermitToken

logger = logging.getLogger(__name__)


class TechnoStore(Contract):
    _state_fields = ("catalog",)

    def __init__(
        self,
        chain: Chain,
        owner: str,
        token: PermitToken,
        policy: Optional[RefundPolicy] = None,
    ) -> None:
        super().__init__(chain, owner)
        self._owner = normalize_address(owner)
        self._token = token
        self._policy = policy or RefundPolicy()
        self.catalog = Catalog()

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def token(self) -> PermitToken:
        return self._token

    @property
    def policy(self) -> RefundPolicy:
        return self._policy

    # ── owner surface ────────────────────────────────────────────────────────

    def add_product(self, caller: str, name: str, quantity: int, price: int) -> Receipt:
        """List ``quantity`` items of ``name``.

        Re-listing an existing name only tops up its quantity; the price
        given on the first listing stays in force.
        """
        if not name or quantity <= 0 or price <= 0:
            raise InvalidInputs("name must be non-empty and quantity/price positive")
        if not is_uint256(quantity) or not is_uint256(price):
            raise InvalidInputs("quantity and price must fit in 256 bits")
        if normalize_address(caller) != self._owner:
            raise NotOwner(f"{caller} is not the store owner")

        with self.chain.transaction() as tx:
            product = self.catalog.list_product(name, quantity, price)
            self.chain.emit(self.address, ProductAdded(name=name, quantity=quantity))

        logger.info("Listed %d x '%s' (now %d in stock at %d)", quantity, name, product.quantity, product.price)
        return tx.receipt

    # ── customer surface ─────────────────────────────────────────────────────

    def buy_product(
        self,
        caller: str,
        index: int,
        amount: int,
        deadline: int,
        signature: PermitSignature,
    ) -> Receipt:
        buyer = normalize_address(caller)
        product = self.catalog.at(index)
        if product.quantity < 1:
            raise InsufficientAmount(f"'{product.name}' is out of stock")
        if self.catalog.purchased_at(product.name, buyer) != 0:
            raise ProductAlreadyBought(f"{buyer} already holds an open purchase of '{product.name}'")
        if amount != product.price:
            raise InvalidInputs(f"Permit amount {amount} does not match price {product.price}")
        if not is_uint256(deadline):
            raise InvalidInputs(f"Permit deadline {deadline} does not fit in 256 bits")

        with self.chain.transaction() as tx:
            self._token.permit(buyer, self.address, amount, deadline, signature)
            self._token.transfer_from(self.address, buyer, self.address, amount)
            self.catalog.open_purchase(product.name, buyer, tx.number)
            self.chain.emit(self.address, ProductBought(name=product.name, buyer=buyer))

        logger.info("%s bought '%s' for %d at block %d", buyer, product.name, amount, tx.number)
        return tx.receipt

    def refund_product(self, caller: str, index: int) -> Receipt:
        buyer = normalize_address(caller)
        product = self.catalog.at(index)
        purchased_at = self.catalog.purchased_at(product.name, buyer)
        if purchased_at == 0:
            raise ProductNotBought(f"{buyer} has no open purchase of '{product.name}'")

        with self.chain.transaction() as tx:
            if tx.number - purchased_at > self._policy.window_blocks:
                raise RefundExpired(
                    f"Purchase of '{product.name}' at block {purchased_at} is past the "
                    f"{self._policy.window_blocks}-block refund window"
                )
            refund = self._policy.refund_for(product.price)
            self._token.transfer(self.address, buyer, refund)
            self.catalog.close_purchase(product.name, buyer)
            self.chain.emit(self.address, ProductRefunded(name=product.name, buyer=buyer))

        logger.info("Refunded %d to %s for '%s'", refund, buyer, product.name)
        return tx.receipt

    # ── read surface ─────────────────────────────────────────────────────────

    def count(self) -> int:
        return len(self.catalog)

    def name_at(self, index: int) -> str:
        return self.catalog.at(index).name

    def quantity_of(self, name: str) -> int:
        product = self.catalog.get(name)
        return product.quantity if product else 0

    def price_of(self, name: str) -> int:
        product = self.catalog.get(name)
        return product.price if product else 0

    def buyers_of(self, name: str) -> list[str]:
        return self.catalog.buyers_of(name)

    def purchase_height(self, name: str, buyer: str) -> int:
        return self.catalog.purchased_at(name, normalize_address(buyer))

    def products(self) -> list[Product]:
        return [p.model_copy() for p in self.catalog.products.values()]

    def product_view(self, index: int, with_buyers: bool = False) -> ProductView:
        product = self.catalog.at(index)
        return ProductView(
            index=index,
            name=product.name,
            quantity=product.quantity,
            price=product.price,
            buyers=self.catalog.buyers_of(product.name) if with_buyers else None,
        )

    def purchase_view(self, index: int, buyer: str) -> PurchaseView:
        product = self.catalog.at(index)
        buyer = normalize_address(buyer)
        height = self.catalog.purchased_at(product.name, buyer)
        return PurchaseView(
            product=product.name,
            buyer=buyer,
            purchased_at=height,
            refundable_until=height + self._policy.window_blocks if height else None,
        )

    def info(self) -> StoreInfo:
        return StoreInfo(
            address=self.address,
            owner=self._owner,
            token=self._token.address,
            chain_id=self.chain.chain_id,
            height=self.chain.height,
            timestamp=self.chain.timestamp,
            product_count=len(self.catalog),
            refund_policy=self._policy,
        )
