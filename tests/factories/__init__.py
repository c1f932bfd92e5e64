"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation. Factories build
plain dicts of column values, ready for ``Model(**data)`` or the in-memory
record store.
"""

from .user import TEST_PASSWORD, UserFactory
from .prospect import ProspectFactory, NoWebsiteProspectFactory, HotLeadProspectFactory
from .segment import SegmentFactory, RULES_HIGH_ICP

__all__ = [
    "TEST_PASSWORD",
    "UserFactory",
    "ProspectFactory",
    "NoWebsiteProspectFactory",
    "HotLeadProspectFactory",
    "SegmentFactory",
    "RULES_HIGH_ICP",
]
