from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from leadflow.core.auth import AuthUser, get_current_user
from leadflow.core.config import get_settings
from leadflow.dashboard.api import router as dashboard_router
from leadflow.metrics import generate_metrics_payload, metrics_content_type
from leadflow.pipeline.api import router as leads_router
from leadflow.pipeline.api import tasks_router

router = APIRouter()
router.include_router(leads_router)
router.include_router(tasks_router)
router.include_router(dashboard_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, int | list[str]]:
    return {
        "user_id": user.user_id,
        "vendor_id": user.vendor_id,
        "roles": user.roles,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if "system.metrics.read" not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
