"""Environment-driven settings.

Every field can be overridden with a ``TECHNOSTORE_*`` environment variable
or a ``.env`` file, e.g.::

    export TECHNOSTORE_REFUND_WINDOW_BLOCKS=50
    export TECHNOSTORE_LOG_LEVEL=DEBUG
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TECHNOSTORE_",
        env_file_encoding="utf-8",
    )

    # Ledger
    chain_id: int = 31337
    genesis_timestamp: int = 1_700_000_000
    block_interval: int = 12  # seconds per block

    # Token
    token_name: str = "TechnoToken"
    token_symbol: str = "TT"
    token_version: str = "1"
    token_supply: int = 10_000

    # Refund policy
    refund_window_blocks: int = Field(default=100, ge=0)
    refund_percent: int = Field(default=80, ge=0, le=100)

    # Devnet accounts; account 0 deploys and owns the store
    dev_account_count: int = 5
    dev_account_seed: str = "technostore-devnet"
    customer_allowance: int = 1_000
    seed_on_startup: bool = True

    log_level: str = "INFO"


# Module-level singleton — import as `from technostore.config import settings`
settings = Settings()
