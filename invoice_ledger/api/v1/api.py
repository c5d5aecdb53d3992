"""
V1 API router aggregation.

All versioned endpoint routers are mounted here under a common prefix.
The top-level ``main.py`` mounts this router at ``/api/v1``.
"""

from fastapi import APIRouter

from invoice_ledger.api.v1.endpoints import admin, investments, invoices, participants, stats

api_router = APIRouter()

api_router.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])
api_router.include_router(participants.router, prefix="/participants", tags=["Participants"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])

# These routers define their own full paths (/investments/..., /investors/...,
# /stats, /portfolio/...) so they are mounted at the root of the v1 prefix.
api_router.include_router(investments.router, tags=["Investments"])
api_router.include_router(stats.router, tags=["Statistics"])
