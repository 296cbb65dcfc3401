"""
Repository layer for the VIP sync feature.
"""

from .entitlement_repository import EntitlementRepository, EntitlementRepositoryError

__all__ = ["EntitlementRepository", "EntitlementRepositoryError"]
