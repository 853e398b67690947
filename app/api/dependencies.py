"""Process-wide workflow and notifier used by the API routes.

The workflow is the single owner of all discrepancy state, so the API
shares one instance across requests.  Tests override ``get_workflow``
through ``app.dependency_overrides``.
"""

from __future__ import annotations

from app.core.config import settings
from app.services.discrepancy.notifications import LoggingNotifier, Notifier
from app.services.discrepancy.policy import DeductionPolicy
from app.services.discrepancy.workflow import DiscrepancyWorkflow

_workflow = DiscrepancyWorkflow(policy=DeductionPolicy.from_settings(settings))
_notifier = LoggingNotifier()


def get_workflow() -> DiscrepancyWorkflow:
    return _workflow


def get_notifier() -> Notifier:
    return _notifier
