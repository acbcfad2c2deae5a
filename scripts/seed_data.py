"""
Deterministic devnet seeding.

Produces:
  - every customer account funded from the owner's supply
  - 6 tech products with quantities between 5 and 25
  - prices between 20 and 150 token units (multiples of 5)
"""

import logging
import random
from typing import Optional

from technostore.config import settings
from technostore.devnet import Devnet, deploy

SEED = 42

PRODUCTS = [
    "Keyboard",
    "Mouse",
    "Monitor",
    "Headset",
    "Webcam",
    "USB Hub",
]

logger = logging.getLogger(__name__)


def seed(devnet: Devnet, customer_allowance: Optional[int] = None) -> None:
    if customer_allowance is None:
        customer_allowance = settings.customer_allowance
    rng = random.Random(SEED)
    owner = devnet.owner.address

    # ── funds ────────────────────────────────────────────────────────────────
    for customer in devnet.customers:
        devnet.token.transfer(owner, customer.address, customer_allowance)

    # ── catalog ──────────────────────────────────────────────────────────────
    for name in PRODUCTS:
        quantity = rng.randint(5, 25)
        price = rng.randint(4, 30) * 5
        devnet.store.add_product(owner, name, quantity, price)

    logger.info(
        "Seeded %d products and funded %d customers with %d %s each",
        len(PRODUCTS),
        len(devnet.customers),
        customer_allowance,
        devnet.token.symbol,
    )


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    seed(deploy(settings))
