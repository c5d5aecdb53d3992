"""SQLModel table models — import here so metadata is populated."""

from invoice_ledger.models.invoice import Invoice  # noqa: F401
from invoice_ledger.models.investment import Investment  # noqa: F401
from invoice_ledger.models.participant import Participant  # noqa: F401
