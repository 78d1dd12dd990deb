from fastapi import APIRouter

from medrecords.api.v1.routers.medical_records import router as medical_records_router

v1_router = APIRouter(prefix="/api/v1")

v1_router.include_router(medical_records_router)
