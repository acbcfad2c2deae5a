from typing import Optional

from technostore.errors import IndexOutOfRange
from technostore.models import Product


class Catalog:
    """Products, purchase records and buyer rosters of one store.

    Products keep their insertion order, which is also their index. Nothing
    is ever removed: purchase heights are reset to 0 instead of deleted and
    rosters only grow.
    """

    def __init__(self) -> None:
        self.products: dict[str, Product] = {}
        self.purchases: dict[tuple[str, str], int] = {}
        self.buyers: dict[str, list[str]] = {}

    # ── writes ────────────────────────────────────────────────────────────────

    def list_product(self, name: str, quantity: int, price: int) -> Product:
        product = self.products.get(name)
        if product is None:
            product = Product(name=name, quantity=quantity, price=price)
            self.products[name] = product
            self.buyers[name] = []
        else:
            product.quantity += quantity
        return product

    def open_purchase(self, name: str, buyer: str, height: int) -> None:
        self.products[name].quantity -= 1
        self.purchases[(name, buyer)] = height
        roster = self.buyers[name]
        if buyer not in roster:
            roster.append(buyer)

    def close_purchase(self, name: str, buyer: str) -> None:
        self.products[name].quantity += 1
        self.purchases[(name, buyer)] = 0

    # ── reads ─────────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.products)

    def get(self, name: str) -> Optional[Product]:
        return self.products.get(name)

    def at(self, index: int) -> Product:
        if not 0 <= index < len(self.products):
            raise IndexOutOfRange(f"No product at index {index} (catalog holds {len(self.products)})")
        return list(self.products.values())[index]

    def purchased_at(self, name: str, buyer: str) -> int:
        return self.purchases.get((name, buyer), 0)

    def buyers_of(self, name: str) -> list[str]:
        return list(self.buyers.get(name, []))
