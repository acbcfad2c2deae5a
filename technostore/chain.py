"""
In-process ledger used as the runtime for the store and its token.

A ``Chain`` keeps a monotonic block height and timestamp, assigns contract
addresses and runs every state-changing call inside ``transaction()``:

  - the call executes against the pending block (height + 1);
  - nested calls (store -> token) join the outer transaction;
  - any exception restores every deployed contract to its pre-call state and
    drops the pending events, so no partial update is ever observable;
  - on success the block is mined and its events are appended to the log.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from eth_utils import is_address, keccak, to_checksum_address
from pydantic import BaseModel

from technostore.errors import InvalidInputs
from technostore.models import LogEntry, Receipt

logger = logging.getLogger(__name__)


MAX_UINT256 = 2**256 - 1


def is_uint256(value: int) -> bool:
    return 0 <= value <= MAX_UINT256


def normalize_address(value: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidInputs(f"Malformed address: {value!r}")
    return to_checksum_address(value)


class Contract:
    """Base for objects living on a ``Chain``.

    Subclasses list the attributes holding ledger state in ``_state_fields``;
    those are snapshotted before each transaction.
    """

    _state_fields: tuple[str, ...] = ()

    def __init__(self, chain: "Chain", deployer: str) -> None:
        self._chain = chain
        self.address = chain.deploy(self, deployer)

    @property
    def chain(self) -> "Chain":
        return self._chain

    def snapshot(self) -> dict:
        return {f: copy.deepcopy(getattr(self, f)) for f in self._state_fields}

    def restore(self, state: dict) -> None:
        for field, value in state.items():
            setattr(self, field, value)


class PendingTransaction:
    def __init__(self, number: int, timestamp: int) -> None:
        self.number = number
        self.timestamp = timestamp
        self._events: list[tuple[str, BaseModel]] = []
        self.receipt: Optional[Receipt] = None

    def emit(self, address: str, event: BaseModel) -> None:
        self._events.append((address, event))


class Chain:
    def __init__(
        self,
        chain_id: int = 31337,
        genesis_timestamp: int = 1_700_000_000,
        block_interval: int = 12,
    ) -> None:
        self.chain_id = chain_id
        self.block_interval = block_interval
        self.height = 0
        self.timestamp = genesis_timestamp
        self.logs: list[LogEntry] = []
        self._contracts: list[Contract] = []
        self._deploy_nonce = 0
        self._pending: Optional[PendingTransaction] = None

    # ── block production ─────────────────────────────────────────────────────

    def mine(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError("blocks must not be negative")
        self.height += blocks
        self.timestamp += blocks * self.block_interval
        return self.height

    def deploy(self, contract: Contract, deployer: str) -> str:
        deployer = normalize_address(deployer)
        self._deploy_nonce += 1
        digest = keccak(text=f"{self.chain_id}:{deployer}:{self._deploy_nonce}")
        address = to_checksum_address(digest[-20:])
        self._contracts.append(contract)
        logger.info("Deployed %s at %s", type(contract).__name__, address)
        return address

    # ── transactions ─────────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[PendingTransaction]:
        if self._pending is not None:
            yield self._pending
            return

        snapshots = [(c, c.snapshot()) for c in self._contracts]
        pending = PendingTransaction(self.height + 1, self.timestamp + self.block_interval)
        self._pending = pending
        try:
            yield pending
        except BaseException as exc:
            for contract, state in snapshots:
                contract.restore(state)
            logger.debug("Reverted transaction at block %d: %r", pending.number, exc)
            raise
        finally:
            self._pending = None

        self.height = pending.number
        self.timestamp = pending.timestamp
        entries = []
        for address, event in pending._events:
            entry = LogEntry(
                address=address,
                block_number=pending.number,
                log_index=len(self.logs),
                event=type(event).__name__,
                args=event.model_dump(),
            )
            self.logs.append(entry)
            entries.append(entry)
        pending.receipt = Receipt(
            block_number=pending.number,
            timestamp=pending.timestamp,
            events=entries,
        )

    def emit(self, address: str, event: BaseModel) -> None:
        if self._pending is None:
            raise RuntimeError("Events can only be emitted inside a transaction")
        self._pending.emit(address, event)

    # ── reads ────────────────────────────────────────────────────────────────

    def get_logs(self, address: Optional[str] = None, event: Optional[str] = None) -> list[LogEntry]:
        return [
            entry for entry in self.logs
            if (address is None or entry.address == address)
            and (event is None or entry.event == event)
        ]
