"""
Database model registry.

Importing this module registers the three ledger tables (``invoices``,
``investments``, ``participants``) with SQLModel's metadata, which
``create_all()`` needs.
"""

from invoice_ledger.models.invoice import Invoice  # noqa: F401
from invoice_ledger.models.investment import Investment  # noqa: F401
from invoice_ledger.models.participant import Participant  # noqa: F401
