"""Running counters for the discrepancy workflow.

The aggregator does no validation of its own: the workflow façade is its only
writer and is trusted to hand over exactly one delta per transition.
"""

from __future__ import annotations

from dataclasses import replace

from app.services.discrepancy.entities import Analytics, AnalyticsDelta


class AnalyticsAggregator:
    """Holds the current :class:`Analytics` and folds deltas into it."""

    def __init__(self, initial: Analytics | None = None) -> None:
        self._state = initial or Analytics()

    def snapshot(self) -> Analytics:
        return self._state

    def apply(self, delta: AnalyticsDelta) -> Analytics:
        """Add *delta* to the counters; pending verifications never drop below 0."""
        if delta.is_empty:
            return self._state
        state = self._state
        self._state = replace(
            state,
            total_discrepancies=state.total_discrepancies + delta.total_discrepancies,
            pending_verifications=max(
                0, state.pending_verifications + delta.pending_verifications
            ),
            escalated_cases=state.escalated_cases + delta.escalated_cases,
            total_amount=state.total_amount + delta.total_amount,
            resolved=state.resolved + delta.resolved,
        )
        return self._state

    def reset(self) -> None:
        self._state = Analytics()
