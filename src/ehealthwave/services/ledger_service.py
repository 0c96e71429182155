"""Hash-chained audit ledger.

Every grant lifecycle event is appended here. Each entry stores the SHA-256
digest of its payload, its timestamp and the previous entry's digest, so the
chain can be re-verified end to end at any time.
"""

import json
import threading
from typing import Any, Dict, List, Optional, Union

from ehealthwave.models.ledger import (
    GENESIS_PREVIOUS_HASH,
    LedgerEntry,
    LedgerEventType,
    entry_id_for,
)
from ehealthwave.storage.base import LedgerStore
from ehealthwave.utils.clock import Clock, SystemClock, to_epoch_millis
from ehealthwave.utils.crypto import canonical_json, sha256_hex
from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_GENESIS_MESSAGE = "Genesis Block for eHealthWave"


def compute_entry_hash(
    payload: Dict[str, Any], timestamp: int, previous_hash: str
) -> str:
    """Digest committing to an entry's payload, time and predecessor."""
    return sha256_hex(
        {"data": payload, "timestamp": timestamp, "previousHash": previous_hash}
    )


class LedgerService:
    """Append-only audit ledger over a ``LedgerStore``."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Optional[Clock] = None,
        genesis_message: str = DEFAULT_GENESIS_MESSAGE,
    ) -> None:
        """Open the ledger, writing the genesis entry into an empty store.

        Args:
            store: Backing entry store
            clock: Time source for entry timestamps
            genesis_message: Message recorded in the genesis payload
        """
        self.store = store
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()

        with self._lock:
            if self.store.count() == 0:
                payload = {"message": genesis_message}
                timestamp = to_epoch_millis(self.clock.now())
                genesis = LedgerEntry(
                    id=entry_id_for(0),
                    timestamp=timestamp,
                    payload=payload,
                    previous_hash=GENESIS_PREVIOUS_HASH,
                    hash=compute_entry_hash(payload, timestamp, GENESIS_PREVIOUS_HASH),
                )
                self.store.append(genesis)
                logger.info("ledger_genesis_created", hash=genesis.hash)

    def append(self, payload: Dict[str, Any]) -> LedgerEntry:
        """Append an event to the chain.

        Args:
            payload: JSON-compatible event data

        Returns:
            The stored entry

        Raises:
            StorageUnavailableError: If the backing store fails
        """
        # Store exactly what was hashed, so re-verification sees the same data
        normalized: Dict[str, Any] = json.loads(canonical_json(payload))

        with self._lock:
            previous = self.store.last()
            position = self.store.count()
            previous_hash = previous.hash if previous else GENESIS_PREVIOUS_HASH
            timestamp = to_epoch_millis(self.clock.now())
            entry = LedgerEntry(
                id=entry_id_for(position),
                timestamp=timestamp,
                payload=normalized,
                previous_hash=previous_hash,
                hash=compute_entry_hash(normalized, timestamp, previous_hash),
            )
            self.store.append(entry)

        logger.debug("ledger_entry_appended", entry_id=entry.id, type=entry.type)
        return entry

    def verify_integrity(self) -> bool:
        """Recompute every digest and link of the chain.

        Returns:
            True if no stored entry has been altered, False otherwise
        """
        entries = self.store.entries()
        if not entries:
            logger.warning("ledger_integrity_failed", reason="missing_genesis")
            return False

        expected_previous = GENESIS_PREVIOUS_HASH
        for position, entry in enumerate(entries):
            recomputed = compute_entry_hash(
                entry.payload, entry.timestamp, entry.previous_hash
            )
            if (
                entry.id != entry_id_for(position)
                or entry.previous_hash != expected_previous
                or entry.hash != recomputed
            ):
                logger.warning("ledger_integrity_failed", position=position)
                return False
            expected_previous = entry.hash

        return True

    def entries(self) -> List[LedgerEntry]:
        """Return the whole chain, oldest first."""
        return self.store.entries()

    def entries_of_type(
        self, event_type: Union[LedgerEventType, str]
    ) -> List[LedgerEntry]:
        """Return the entries whose payload ``type`` matches ``event_type``."""
        wanted = (
            event_type.value if isinstance(event_type, LedgerEventType) else event_type
        )
        return [e for e in self.store.entries() if e.type == wanted]

    def latest(self) -> Optional[LedgerEntry]:
        """Return the newest entry."""
        return self.store.last()

    def __len__(self) -> int:
        """Number of entries, genesis included."""
        return self.store.count()
