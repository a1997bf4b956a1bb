"""Payer / clearinghouse adapter interface for remittance exchange."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from rcm.models.database import RemittanceBatch
from rcm.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class FetchedRemittance:
    """Raw remittance payload returned by a payer connection."""

    content: str
    file_name: str
    payer_name: Optional[str] = None


class PayerAdapter(ABC):
    """
    Connection to a payer or clearinghouse.

    Protocol details (SFTP drops, REST APIs, X12 transport) live in concrete
    adapters. The posting core only needs two things: pull a remittance and
    hand a posted batch back.
    """

    name = "payer"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.connected = False

    def connect(self) -> bool:
        self.connected = True
        return True

    def disconnect(self) -> None:
        self.connected = False

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    @abstractmethod
    def fetch_remittance(self, check_number: str) -> FetchedRemittance:
        """
        Fetch the remittance advice for a payment.

        Args:
            check_number: Check or EFT trace number

        Returns:
            FetchedRemittance with the raw 835 or CSV text
        """

    @abstractmethod
    def submit_for_posting(self, batch: RemittanceBatch) -> Dict[str, Any]:
        """
        Acknowledge a processed batch to the payer.

        Returns:
            Dictionary with the payer's acknowledgement (status, reference, ...)
        """


class StaticPayerAdapter(PayerAdapter):
    """
    Serves remittances from an in-memory mapping.

    Used for local runs and tests where no payer connection exists.
    """

    name = "static"

    def __init__(self, remittances: Dict[str, FetchedRemittance], config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.remittances = dict(remittances)
        self.submitted: List[int] = []

    def fetch_remittance(self, check_number: str) -> FetchedRemittance:
        try:
            return self.remittances[check_number]
        except KeyError:
            raise LookupError(f"No remittance for check {check_number}") from None

    def submit_for_posting(self, batch: RemittanceBatch) -> Dict[str, Any]:
        self.submitted.append(batch.id)
        logger.info("Batch acknowledged to payer", adapter=self.name, era_id=batch.id)
        return {"status": "accepted", "reference": batch.era_number}
