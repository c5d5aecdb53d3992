"""
Result schemas of the ledger's mutating operations (invest, settle) and of
the investment status view, all of which pair an investment with its invoice.
"""

from typing import List

from pydantic import BaseModel

from invoice_ledger.models.investment import InvestmentStatus
from invoice_ledger.schemas.common import Money
from invoice_ledger.schemas.investment import InvestmentResponse, SettlementLine
from invoice_ledger.schemas.invoice import InvoiceResponse


class InvestmentCreated(BaseModel):
    success: bool = True
    message: str = "Investment submitted successfully"
    investment: InvestmentResponse
    invoice: InvoiceResponse


class InvestmentStatusView(BaseModel):
    """An investment, its invoice, and the interest it will earn at settlement."""

    investment: InvestmentResponse
    invoice: InvoiceResponse
    status: InvestmentStatus
    estimated_return: Money


class SettlementResult(BaseModel):
    """The settled invoice and the per-investor breakdown of what was paid out."""

    success: bool = True
    message: str = "Invoice settled successfully"
    invoice: InvoiceResponse
    settlements: List[SettlementLine]
    total_paid: Money
