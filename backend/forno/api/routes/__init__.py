"""API routes."""

from fastapi import APIRouter

from forno.api.routes import inventory, orders, print_jobs, production, purchases, settlement, transfers

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(settlement.router, prefix="/orders", tags=["orders", "settlement"])
api_router.include_router(production.router, prefix="/production", tags=["production", "inventory"])
api_router.include_router(purchases.router, prefix="/purchases", tags=["purchases", "inventory"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers", "inventory"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(print_jobs.router, prefix="/print-jobs", tags=["printing"])
