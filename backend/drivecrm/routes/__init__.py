# drivecrm/routes/__init__.py
from fastapi import APIRouter
from .admin import router as admin_router
from .ingest import router as ingest_router
from .leads import router as leads_router
from .me import router as me_router

router = APIRouter()
router.include_router(me_router)
router.include_router(admin_router)
router.include_router(leads_router)
router.include_router(ingest_router)
