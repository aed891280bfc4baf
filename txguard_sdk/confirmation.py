"""
ConfirmationLedger - one explicit confirmation per request.

There is no batch primitive: N requests need N calls to
``record``, each with its own acknowledgement.
"""
import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Dict, Optional

from .exceptions import ConfirmationDenied, DuplicateConfirmation
from .models import ConfirmationRecord, Disclosure, RequestKind

logger = logging.getLogger(__name__)


class ConfirmationLedger:
    """
    Thread-safe store of confirmation records keyed by request id.

    Records are the audit trail of what a person approved and are kept for
    the life of the ledger; create a new ledger (or TransactionGuard) to
    start afresh.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, ConfirmationRecord] = {}

    def record(self, request_id: str, disclosure: Disclosure, user_ack: bool) -> ConfirmationRecord:
        """
        Record a person's explicit acknowledgement of one disclosure.

        Args:
            request_id: A single request id
            disclosure: The disclosure that was shown for that request
            user_ack: The person's answer; only the literal True confirms

        Returns:
            The new ConfirmationRecord

        Raises:
            TypeError: If more than one request id is passed
            ConfirmationDenied: If user_ack is not True, or the disclosure
                belongs to another request or is incomplete
            DuplicateConfirmation: If the request is already confirmed
        """
        if not isinstance(request_id, str):
            if isinstance(request_id, Iterable):
                raise TypeError("record() takes exactly one request id; batches need one record per request")
            raise TypeError(f"request_id must be a string, got {type(request_id).__name__}")

        if user_ack is not True:
            logger.info(f"Confirmation declined for {request_id}")
            raise ConfirmationDenied("The transaction was not explicitly confirmed", request_id=request_id)

        if disclosure.request_id != request_id:
            raise ConfirmationDenied(
                f"Disclosure belongs to request {disclosure.request_id}; confirmations are not transferable",
                request_id=request_id,
            )

        if disclosure.kind == RequestKind.APPROVAL and disclosure.approval is None:
            raise ConfirmationDenied(
                "Approval requests cannot be confirmed without an approval disclosure",
                request_id=request_id,
            )

        with self._lock:
            if request_id in self._records:
                raise DuplicateConfirmation("Request is already confirmed", request_id=request_id)
            record = ConfirmationRecord(
                request_id=request_id,
                disclosed_fields=disclosure,
                disclosed_bytes=disclosure.canonical_bytes(),
                confirmed_at=datetime.now(timezone.utc),
            )
            self._records[request_id] = record

        logger.info(f"Recorded confirmation for {request_id}")
        return record

    def get(self, request_id: str) -> Optional[ConfirmationRecord]:
        with self._lock:
            return self._records.get(request_id)

    def has_record(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._records
