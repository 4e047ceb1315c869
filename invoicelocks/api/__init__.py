"""API routers for InvoiceLocks."""
from fastapi import APIRouter

from invoicelocks.api.routes import auth, invoices, system

router = APIRouter(prefix="/api/v1")
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
router.include_router(system.router, prefix="/system", tags=["system"])
