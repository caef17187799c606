from fastapi import APIRouter

# Public: courts and availability
from courtside.api.v1.public.courts import router as courts_router

# Public: bookings
from courtside.api.v1.public.bookings import router as bookings_router

# Admin
from courtside.api.v1.admin.bookings import router as admin_bookings_router
from courtside.api.v1.admin.special_bookings import router as special_bookings_router
from courtside.api.v1.admin.rules import router as rules_router
from courtside.api.v1.admin.closures import router as closures_router

api_router = APIRouter()

# --- Public: courts ---
api_router.include_router(courts_router)

# --- Public: bookings ---
api_router.include_router(bookings_router)

# --- Admin ---
api_router.include_router(admin_bookings_router)
api_router.include_router(special_bookings_router)
api_router.include_router(rules_router)
api_router.include_router(closures_router)
