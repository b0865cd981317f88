from fastapi import APIRouter

from api.v1.admin import router as admin_router
from api.v1.attendance import router as attendance_router
from api.v1.classes import router as classes_router
from api.v1.enrollments import router as enrollments_router
from api.v1.rentals import router as rentals_router
from api.v1.webhooks import router as webhooks_router

v1_router = APIRouter(prefix="/v1")

# Studio
v1_router.include_router(classes_router)
v1_router.include_router(enrollments_router)
v1_router.include_router(attendance_router)
v1_router.include_router(rentals_router)
v1_router.include_router(admin_router)

# Payment gateway callbacks
v1_router.include_router(webhooks_router)

router = APIRouter()
router.include_router(v1_router)
