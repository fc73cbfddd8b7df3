from fastapi import APIRouter
from hotel_ledger.api.v1.routes.rooms import router as rooms_router
from hotel_ledger.api.v1.routes.bookings import router as bookings_router
from hotel_ledger.api.v1.routes.payments import router as payments_router
from hotel_ledger.api.v1.routes.refunds import router as refunds_router
from hotel_ledger.api.v1.routes.financial import router as financial_router
from hotel_ledger.api.v1.routes.ops import router as ops_router
from hotel_ledger.api.v1.routes.admin import router as admin_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(rooms_router)
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(refunds_router)
api_router.include_router(financial_router)
api_router.include_router(ops_router)
api_router.include_router(admin_router)
