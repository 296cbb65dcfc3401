"""
Service layer for the VIP sync feature.
"""

from .reconciliation_service import (
    VipReconciliationService,
    VipSyncError,
    vip_reconciliation_service,
)
from .status_service import StatusService, format_status_message, status_service
from .trial_service import TrialService, trial_service

__all__ = [
    "VipReconciliationService",
    "VipSyncError",
    "vip_reconciliation_service",
    "StatusService",
    "format_status_message",
    "status_service",
    "TrialService",
    "trial_service",
]
