from fastapi import APIRouter

from farmbid.utils import log

from .auctions import router as auctions_router

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(auctions_router)


@router.get("/health", tags=["internal"])
async def route_health():
    return {"status": "ok"}
