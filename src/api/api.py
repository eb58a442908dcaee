from api.endpoints import bulk_upload
from fastapi import APIRouter

api_router = APIRouter()
api_router.include_router(bulk_upload.router, prefix="/intake", tags=["Bulk Incident Intake"])
