"""Customer verification ledger.

Every SMS outreach asking a customer to confirm what they paid the agent is
recorded here.  An order can collect several verifications (retries after
an expiry); each one takes at most one response.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Optional

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.services.discrepancy.entities import (
    CustomerVerification,
    IdSequence,
    VerificationStatus,
    parse_status,
    require_identifier,
)

logger = get_logger(__name__)


class VerificationLedger:
    """In-memory verification records keyed by id."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock
        self._verifications: dict[str, CustomerVerification] = {}
        self._ids = IdSequence("VER")

    def send(self, order_id: str) -> CustomerVerification:
        """Record a new outreach for *order_id* in status ``sent``."""
        require_identifier(order_id, "order_id")
        verification = CustomerVerification(
            id=self._ids.next_id(),
            order_id=order_id,
            sent_at=self._clock(),
        )
        self._verifications[verification.id] = verification
        logger.info("Verification sent: id=%s order=%s", verification.id, order_id)
        return verification

    def record_response(
        self,
        verification_id: str,
        status,
        customer_response: Optional[str] = None,
    ) -> CustomerVerification:
        """Close a verification with the customer's answer.

        Raises:
            NotFoundError: unknown *verification_id*.
            ValidationError: *status* is not a terminal verification status.
            InvalidStateError: the verification already has a response.
        """
        outcome = parse_status(VerificationStatus, status)
        if not outcome.is_terminal:
            raise ValidationError(
                f"Response status must be one of confirmed, disputed, expired, "
                f"resolved; got {outcome.value!r}"
            )
        verification = self.get(verification_id)
        if verification.status.is_terminal:
            raise InvalidStateError(
                f"Verification {verification_id} already closed as "
                f"{verification.status.value!r}"
            )

        verification.status = outcome
        verification.customer_response = customer_response
        verification.responded_at = self._clock()
        logger.info(
            "Verification response: id=%s order=%s status=%s",
            verification_id,
            verification.order_id,
            outcome.value,
        )
        return verification

    def get(self, verification_id: str) -> CustomerVerification:
        try:
            return self._verifications[verification_id]
        except KeyError:
            raise NotFoundError(
                f"Verification {verification_id!r} not found"
            ) from None

    def list_verifications(
        self, order_id: Optional[str] = None
    ) -> list[CustomerVerification]:
        return [
            v
            for v in self._verifications.values()
            if order_id is None or v.order_id == order_id
        ]

    def __len__(self) -> int:
        return len(self._verifications)

    def load(self, verifications: Iterable[CustomerVerification]) -> None:
        self._verifications = {v.id: v for v in verifications}
        self._ids.advance_past(self._verifications)

    def clear(self) -> None:
        self._verifications.clear()
        self._ids = IdSequence("VER")
