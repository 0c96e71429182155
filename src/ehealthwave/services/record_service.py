"""Patient record sources.

Successful emergency PIN redemptions return the patient's records from a
``RecordStore``. ``LedgerRecordStore`` keeps medical records on the audit
ledger itself, so every record is covered by the chain's integrity check.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ehealthwave.models.ledger import LedgerEntry, LedgerEventType
from ehealthwave.services.base import require_text
from ehealthwave.services.ledger_service import LedgerService
from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)


class RecordStore(ABC):
    """Supplies a subject's records."""

    @abstractmethod
    def records_for(self, subject_id: str) -> List[Dict[str, Any]]:
        """Return every record held for ``subject_id``."""


class LedgerRecordStore(RecordStore):
    """Medical records stored as ``MEDICAL_RECORD`` ledger entries."""

    def __init__(self, ledger: LedgerService):
        """Initialize with the ledger that holds the records."""
        self.ledger = ledger

    def add_medical_record(self, subject_id: str, data: Dict[str, Any]) -> LedgerEntry:
        """Append a medical record for ``subject_id``.

        Args:
            subject_id: Patient the record belongs to
            data: JSON-compatible record body

        Returns:
            The ledger entry holding the record
        """
        subject_id = require_text(subject_id, "subject_id")
        entry = self.ledger.append(
            {
                "type": LedgerEventType.MEDICAL_RECORD.value,
                "subject_id": subject_id,
                "data": data,
            }
        )
        logger.info("medical_record_added", subject_id=subject_id, entry_id=entry.id)
        return entry

    def records_for(self, subject_id: str) -> List[Dict[str, Any]]:
        """Project the subject's medical records back out of the ledger."""
        return [
            {
                "id": entry.id,
                "timestamp": entry.timestamp,
                "data": entry.payload.get("data"),
                "hash": entry.hash,
            }
            for entry in self.ledger.entries_of_type(LedgerEventType.MEDICAL_RECORD)
            if entry.payload.get("subject_id") == subject_id
        ]
