"""
HubSpot contact insights: associations, deal/email details, form submissions
and engagement counts for a filtered set of contacts.
"""
from __future__ import annotations

__version__ = "0.1.0"
