from aiogram import Router

from . import start
from .client import booking as client_booking
from .client import bookings as client_bookings
from .client import payment as client_payment
from .client import profile as client_profile
from .client import request as client_request
from .client import schedule as client_schedule
from .client import tracking as client_tracking
from .contractor import service as contractor_service

router = Router()
router.include_router(start.router)
router.include_router(client_profile.router)
router.include_router(client_request.router)
router.include_router(client_schedule.router)
router.include_router(client_booking.router)
router.include_router(client_payment.router)
router.include_router(client_tracking.router)
router.include_router(client_bookings.router)
router.include_router(contractor_service.router)
