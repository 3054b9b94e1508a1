from fastapi import APIRouter

from api.v1.routes.deliveries import router as deliveries_router

router = APIRouter()
router.include_router(deliveries_router)
