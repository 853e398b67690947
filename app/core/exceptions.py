"""Error taxonomy for the discrepancy workflow.

All errors are local, synchronous and caller-correctable; nothing here is
retried internally.
"""


class DiscrepancyWorkflowError(Exception):
    """Base exception for discrepancy workflow errors."""

    pass


class ValidationError(DiscrepancyWorkflowError):
    """Malformed input: non-finite amount, empty identifier, bad status literal."""

    pass


class NotFoundError(DiscrepancyWorkflowError):
    """Referenced id does not exist in the relevant ledger."""

    pass


class InvalidStateError(ValidationError):
    """Transition not permitted from the record's current status.

    Subclasses ``ValidationError`` because re-responding to a closed
    verification is rejected as invalid input as well.
    """

    pass
