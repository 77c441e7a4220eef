# drivecrm/routes/ingest.py
import logging

from fastapi import APIRouter, Depends

from drivecrm.deps import require_service_auth
from drivecrm.security.service_auth import ServiceCall

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["automation"])


@router.post("/automation/logs/ingest")
def ingest_automation_logs(call: ServiceCall = Depends(require_service_auth)):
    items = call.body if isinstance(call.body, list) else [call.body]
    logger.info("Accepted %d automation log entries", len(items))
    return {"ok": True, "received": len(items)}
