"""
Roster ingestion for the VIP sync feature.
"""

from .eligibility import EligibilityMap, RosterSchemaError, build_eligibility_map

__all__ = ["EligibilityMap", "RosterSchemaError", "build_eligibility_map"]
