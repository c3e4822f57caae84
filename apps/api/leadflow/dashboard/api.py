from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from leadflow.core.auth import AuthUser, get_current_user
from leadflow.core.database import get_db
from leadflow.dashboard.service import DashboardService
from leadflow.platform.cache.backend import CacheBackend
from leadflow.platform.cache.service import get_cache_backend

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def get_dashboard_service(cache: CacheBackend = Depends(get_cache_backend)) -> DashboardService:
    return DashboardService(cache=cache)


@router.get("/tasks")
def task_stats(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return {"success": True, "data": service.task_stats(db, vendor_id=user.vendor_id, user_id=user.user_id)}


@router.get("/performance-snapshot")
def performance_snapshot(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return {"success": True, "data": service.performance_snapshot(db, vendor_id=user.vendor_id, user_id=user.user_id)}


@router.get("/lead-status-wise-counts")
def lead_status_wise_counts(
    mine: bool = Query(default=True),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    user_id = user.user_id if mine else None
    data = service.status_counts(db, vendor_id=user.vendor_id, user_id=user_id)
    return {"success": True, "mode": "my_leads" if mine else "overall_leads", "data": data}


@router.get("/avg-days-to-booking")
def avg_days_to_booking(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return {"success": True, "data": service.stage_duration(db, vendor_id=user.vendor_id, user_id=user.user_id)}


@router.get("/bookings")
def bookings(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return {"success": True, "data": service.bookings(db, vendor_id=user.vendor_id, user_id=user.user_id)}


@router.get("/activity-status-counts")
def activity_status_counts(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return {
        "success": True,
        "data": service.activity_status_counts(db, vendor_id=user.vendor_id, user_id=user.user_id),
    }
