from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, cast

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from sqlalchemy.orm import Session

from leadflow.context import CORRELATION_HEADER, get_correlation_id
from leadflow.core.auth import AuthUser, get_current_user
from leadflow.core.database import get_db
from leadflow.errors import LeadflowError, ValidationError
from leadflow.pipeline import readiness
from leadflow.pipeline.documents import document_urls
from leadflow.pipeline.executor import StageTransitionExecutor
from leadflow.pipeline.leads import lead_service
from leadflow.pipeline.schemas import (
    ActivityStatusRevert,
    ActivityStatusUpdate,
    ApproveTechCheckRequest,
    DispatchInfoUpdate,
    LeadCreate,
    ReadinessReport,
    StageListResponse,
    StageMoveRequest,
    TaskAssignRequest,
    TaskRead,
    TechCheckReviewRequest,
    TransitionResult,
    UploadedFile,
)
from leadflow.pipeline.tags import STATUS_SLUGS
from leadflow.pipeline.tasks import task_service
from leadflow.pipeline.visibility import list_stage_leads
from leadflow.platform.storage.object_store import ObjectStore, get_object_store

router = APIRouter(prefix="/api/leads", tags=["leads"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])

_SLUG_TO_TAG = {slug: tag for tag, slug in STATUS_SLUGS.items()}

_GATES = {
    "production": readiness.production,
    "post-production": readiness.post_production,
    "site-readiness": readiness.site_readiness,
    "dispatch": readiness.dispatch_info,
    "final-handover": readiness.final_handover,
    "payment": readiness.project_paid,
}


@dataclass
class ErrorEnvelope:
    success: bool
    code: str
    message: str
    correlation_id: str | None


def error_response(request: Request, exc: LeadflowError) -> JSONResponse:
    correlation_id = get_correlation_id() or request.headers.get(CORRELATION_HEADER)
    payload = ErrorEnvelope(success=False, code=exc.code, message=exc.message, correlation_id=correlation_id)
    return JSONResponse(status_code=exc.status_code, content=payload.__dict__)


async def leadflow_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return error_response(request, cast(LeadflowError, exc))


def get_executor(object_store: ObjectStore = Depends(get_object_store)) -> StageTransitionExecutor:
    return StageTransitionExecutor(object_store=object_store)


async def _read_stage_form(request: Request) -> tuple[dict[str, Any], dict[str, list[UploadedFile]]]:
    form = await request.form()
    payload: dict[str, Any] = {}
    files: dict[str, list[UploadedFile]] = {}
    for name, value in form.multi_items():
        if isinstance(value, UploadFile):
            content = await value.read()
            files.setdefault(name, []).append(
                UploadedFile(
                    filename=value.filename or "file.bin",
                    content=content,
                    content_type=value.content_type or "application/octet-stream",
                )
            )
        elif name == "payload":
            try:
                decoded = json.loads(value or "{}")
            except json.JSONDecodeError:
                raise ValidationError("payload must be a JSON object") from None
            if not isinstance(decoded, dict):
                raise ValidationError("payload must be a JSON object")
            payload.update(decoded)
        else:
            payload[name] = value
    return payload, files


@router.post("", response_model=TransitionResult, status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> TransitionResult:
    return lead_service.create_lead(db, vendor_id=user.vendor_id, user_id=user.user_id, payload=dto)


@router.get("/stages/{slug}", response_model=StageListResponse)
def list_leads_in_stage(
    slug: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> StageListResponse:
    tag = _SLUG_TO_TAG.get(slug)
    if tag is None:
        raise ValidationError(f"unknown stage '{slug}'")
    return list_stage_leads(db, user.vendor_id, user.user_id, tag, page=page, limit=limit)


@router.post("/{lead_id}/stages/{stage}", response_model=TransitionResult)
async def run_stage_transition(
    lead_id: int,
    stage: str,
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    executor: StageTransitionExecutor = Depends(get_executor),
) -> TransitionResult:
    """Multipart endpoint: scalar fields (or a JSON `payload` field) plus one file part per document field."""
    payload, files = await _read_stage_form(request)
    return await run_in_threadpool(
        executor.execute,
        db,
        stage=stage,
        vendor_id=user.vendor_id,
        lead_id=lead_id,
        user_id=user.user_id,
        payload=payload,
        files=files,
    )


@router.post("/{lead_id}/tech-check/approve", response_model=TransitionResult)
def approve_tech_check(
    lead_id: int,
    dto: ApproveTechCheckRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    executor: StageTransitionExecutor = Depends(get_executor),
) -> TransitionResult:
    return executor.approve_tech_check(db, vendor_id=user.vendor_id, lead_id=lead_id, user_id=user.user_id, payload=dto)


@router.post("/{lead_id}/tech-check/review", response_model=TransitionResult)
def review_tech_check_documents(
    lead_id: int,
    dto: TechCheckReviewRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    executor: StageTransitionExecutor = Depends(get_executor),
) -> TransitionResult:
    return executor.review_tech_check_documents(
        db,
        vendor_id=user.vendor_id,
        lead_id=lead_id,
        user_id=user.user_id,
        payload=dto,
    )


@router.put("/{lead_id}/dispatch-planning/info", response_model=TransitionResult)
def update_dispatch_planning_info(
    lead_id: int,
    dto: DispatchInfoUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    executor: StageTransitionExecutor = Depends(get_executor),
) -> TransitionResult:
    return executor.update_dispatch_planning_info(
        db,
        vendor_id=user.vendor_id,
        lead_id=lead_id,
        user_id=user.user_id,
        payload=dto,
    )


@router.post("/{lead_id}/move/{target}", response_model=TransitionResult)
def move_lead(
    lead_id: int,
    target: str,
    dto: StageMoveRequest | None = None,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    executor: StageTransitionExecutor = Depends(get_executor),
) -> TransitionResult:
    moves = {
        "ready-to-dispatch": executor.move_to_ready_to_dispatch,
        "dispatch-planning": executor.move_to_dispatch_planning,
        "dispatch": executor.move_to_dispatch,
        "under-installation": executor.move_to_under_installation,
        "final-handover": executor.move_to_final_handover,
        "completed": executor.complete_lead,
    }
    move = moves.get(target)
    if move is None:
        raise ValidationError(f"unknown move target '{target}'")
    return move(db, vendor_id=user.vendor_id, lead_id=lead_id, user_id=user.user_id, payload=dto)


@router.get("/{lead_id}/readiness/{gate}", response_model=ReadinessReport)
def check_readiness(
    lead_id: int,
    gate: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ReadinessReport:
    check = _GATES.get(gate)
    if check is None:
        raise ValidationError(f"unknown readiness gate '{gate}'")
    return check(db, user.vendor_id, lead_id)


@router.post("/{lead_id}/tasks", response_model=TransitionResult, status_code=status.HTTP_201_CREATED)
def assign_follow_up(
    lead_id: int,
    dto: TaskAssignRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> TransitionResult:
    return task_service.assign(db, vendor_id=user.vendor_id, lead_id=lead_id, created_by=user.user_id, payload=dto)


@router.post("/{lead_id}/tasks/{stage}", response_model=TransitionResult, status_code=status.HTTP_201_CREATED)
def assign_stage_task(
    lead_id: int,
    stage: str,
    dto: TaskAssignRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> TransitionResult:
    return task_service.assign_for_stage(
        db,
        stage=stage,
        vendor_id=user.vendor_id,
        lead_id=lead_id,
        created_by=user.user_id,
        payload=dto,
    )


@router.post("/{lead_id}/activity-status", response_model=TransitionResult)
def update_activity_status(
    lead_id: int,
    dto: ActivityStatusUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> TransitionResult:
    return lead_service.update_activity_status(
        db,
        vendor_id=user.vendor_id,
        lead_id=lead_id,
        user_id=user.user_id,
        payload=dto,
    )


@router.post("/{lead_id}/activity-status/revert", response_model=TransitionResult)
def revert_activity_status(
    lead_id: int,
    dto: ActivityStatusRevert,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> TransitionResult:
    return lead_service.revert_to_ongoing(db, vendor_id=user.vendor_id, lead_id=lead_id, user_id=user.user_id, payload=dto)


@router.get("/{lead_id}/documents")
def list_document_urls(
    lead_id: int,
    tag: str = Query(..., min_length=1),
    disposition: str = Query(default="inline", pattern="^(inline|attachment)$"),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    object_store: ObjectStore = Depends(get_object_store),
) -> dict[str, Any]:
    urls = document_urls(db, object_store, vendor_id=user.vendor_id, lead_id=lead_id, tag=tag, disposition=disposition)
    return {"success": True, "data": urls}


@tasks_router.get("/open", response_model=list[TaskRead])
def list_my_open_tasks(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> list[TaskRead]:
    return task_service.list_open_tasks(db, vendor_id=user.vendor_id, user_id=user.user_id)


@tasks_router.post("/{task_id}/complete", response_model=TaskRead)
def complete_task(
    task_id: int,
    cancel: bool = Query(default=False),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> TaskRead:
    return task_service.complete_task(
        db,
        vendor_id=user.vendor_id,
        task_id=task_id,
        user_id=user.user_id,
        status="cancelled" if cancel else "completed",
    )
