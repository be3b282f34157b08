"""
Lead availability checking.
"""

from governor.leads.availability import (
    LeadAvailability,
    LeadCounts,
    LeadPolicy,
    NoLeadsReason,
    check_lead_pool,
    classify,
)

__all__ = [
    "LeadAvailability",
    "LeadCounts",
    "LeadPolicy",
    "NoLeadsReason",
    "check_lead_pool",
    "classify",
]
