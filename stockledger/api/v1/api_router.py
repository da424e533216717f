"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter

from stockledger.api.v1 import cron
from stockledger.api.v1.stock import audits, history, items, snapshots, transactions

COMPANY_STOCK = "/companies/{company_id}/stock"

api_router = APIRouter()

# Stock ledger routes
api_router.include_router(items.router, prefix=f"{COMPANY_STOCK}/items", tags=["stock-items"])
api_router.include_router(history.router, prefix=COMPANY_STOCK, tags=["stock-history"])
api_router.include_router(transactions.router, prefix=f"{COMPANY_STOCK}/transactions", tags=["stock-transactions"])
api_router.include_router(snapshots.router, prefix=f"{COMPANY_STOCK}/snapshots", tags=["stock-snapshots"])
api_router.include_router(audits.router, prefix=f"{COMPANY_STOCK}/audits", tags=["stock-audits"])

# Scheduler routes
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
