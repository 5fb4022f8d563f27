"""
ClientDesk: CRM data-access core.

Contacts, deals, activities, assessment results, recurring task templates and
data-retention settings stored in a hosted document database, with live
per-user snapshot subscriptions.
"""

__version__ = "0.3.0"
