"""
Background jobs for the VIP sync feature.
"""

from .sync_job import run_expiry_sweep, run_vip_sync, start_vip_sync_scheduler

__all__ = ["run_expiry_sweep", "run_vip_sync", "start_vip_sync_scheduler"]
