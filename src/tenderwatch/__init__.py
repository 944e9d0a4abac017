"""
TenderWatch - Incremental tender discovery.

Polls procurement portals, remembers every tender it has seen, and
reports the ones that are new since the last run.
"""

__version__ = "0.1.0"
__app_name__ = "tenderwatch"
