from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from leadflow.core.config import get_settings
from leadflow.errors import InternalError, LeadflowError, ValidationError
from leadflow.metrics import observe_documents_uploaded, observe_transition
from leadflow.pipeline import readiness
from leadflow.pipeline.access import load_lead, load_vendor_user
from leadflow.pipeline.audit import compose_message, link_documents, write_detailed_log, write_status_change
from leadflow.pipeline.models import (
    DocumentTypeMaster,
    Lead,
    LeadDocument,
    LeadUserMapping,
    LedgerEntry,
    PaymentInfo,
    UserLeadTask,
)
from leadflow.pipeline.resolver import find_status_tag, resolve_document_types, resolve_payment_type, resolve_status
from leadflow.pipeline.schemas import (
    ApproveTechCheckRequest,
    DispatchInfoUpdate,
    ReadinessReport,
    StageMoveRequest,
    TechCheckReviewRequest,
    TransitionResult,
    UploadedFile,
    parse_payload,
)
from leadflow.pipeline.stages import StageDefinition, TransitionScope, get_stage
from leadflow.pipeline.tags import CLIENT_DOCUMENTATION_TAGS, STATUS_LABELS, StatusTag, status_rank
from leadflow.platform.storage.object_store import ObjectStore, build_object_key

logger = logging.getLogger("leadflow.transitions")
tracer = trace.get_tracer("leadflow.transitions")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TransitionDeadline:
    """Wall-clock budget for one transition, checked between steps."""

    seconds: float
    clock: Callable[[], float] = time.monotonic
    started: float = field(init=False)

    def __post_init__(self) -> None:
        self.started = self.clock()

    def check(self, step: str) -> None:
        elapsed = self.clock() - self.started
        if elapsed > self.seconds:
            raise InternalError(f"transition timed out after {elapsed:.1f}s during {step}")


def ensure_forward(session: Session, lead: Lead, target: StatusTag) -> None:
    """Reject a move to a stage before the lead's current one. Staying on the same stage is allowed."""
    if lead.status_id is None:
        return
    current = find_status_tag(session, lead.vendor_id, lead.status_id)
    if current is not None and status_rank(target) < status_rank(current):
        raise ValidationError(
            f"lead {lead.id} is at {STATUS_LABELS[current]} and cannot move back to {STATUS_LABELS[target]}"
        )


def _normalize_files(files: Mapping[str, Sequence[UploadedFile]] | None) -> dict[str, list[UploadedFile]]:
    return {name: [item for item in items if item is not None] for name, items in (files or {}).items()}


def _validate_files(definition: StageDefinition, files: dict[str, list[UploadedFile]]) -> None:
    known = {file_field.name for file_field in definition.files}
    unexpected = sorted(name for name, items in files.items() if items and name not in known)
    if unexpected:
        raise ValidationError(f"unexpected file fields for {definition.key}: {', '.join(unexpected)}")
    for file_field in definition.files:
        count = len(files.get(file_field.name, []))
        if count < file_field.min_count:
            if file_field.min_count == 1:
                raise ValidationError(f"{file_field.name} is required")
            raise ValidationError(f"{file_field.name} requires at least {file_field.min_count} files")
        if file_field.max_count is not None and count > file_field.max_count:
            raise ValidationError(f"{file_field.name} accepts at most {file_field.max_count} file(s)")
    if definition.require_any_file and not any(files.get(f.name) for f in definition.files):
        raise ValidationError(f"at least one document is required for {definition.key}")


@dataclass(slots=True)
class StageTransitionExecutor:
    """Runs one stage transition as a single database transaction.

    Object-store writes happen inside the transaction boundary and are not
    compensated if the transaction later rolls back.
    """

    object_store: ObjectStore
    clock: Callable[[], float] = time.monotonic

    def execute(
        self,
        session: Session,
        *,
        stage: str | StageDefinition,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        payload: BaseModel | dict[str, Any] | None = None,
        files: Mapping[str, Sequence[UploadedFile]] | None = None,
    ) -> TransitionResult:
        definition = stage if isinstance(stage, StageDefinition) else get_stage(stage)
        timeout = definition.timeout_seconds or get_settings().transition_timeout_seconds
        return self._run(
            session,
            stage_key=definition.key,
            vendor_id=vendor_id,
            lead_id=lead_id,
            timeout=timeout,
            body=lambda deadline: self._execute_stage(
                session, definition, deadline, vendor_id, lead_id, user_id, payload, files
            ),
        )

    def _run(
        self,
        session: Session,
        *,
        stage_key: str,
        vendor_id: int,
        lead_id: int,
        timeout: float,
        body: Callable[[TransitionDeadline], TransitionResult],
    ) -> TransitionResult:
        started = time.perf_counter()
        deadline = TransitionDeadline(timeout, clock=self.clock)
        log_fields = {"vendor_id": vendor_id, "lead_id": lead_id, "stage": stage_key}

        with tracer.start_as_current_span("leadflow.transition") as span:
            span.set_attribute("stage", stage_key)
            span.set_attribute("vendor_id", vendor_id)
            span.set_attribute("lead_id", lead_id)
            try:
                result = body(deadline)
                deadline.check("commit")
                session.commit()
            except LeadflowError as exc:
                session.rollback()
                duration = time.perf_counter() - started
                observe_transition(stage_key, exc.code, duration)
                span.set_status(Status(StatusCode.ERROR, exc.message))
                logger.warning(
                    "transition.rejected",
                    extra={**log_fields, "duration_ms": round(duration * 1000, 2), "error": exc.message},
                )
                raise
            except Exception as exc:
                session.rollback()
                duration = time.perf_counter() - started
                observe_transition(stage_key, "internal_error", duration)
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                logger.exception(
                    "transition.failed",
                    extra={**log_fields, "duration_ms": round(duration * 1000, 2), "error": str(exc)},
                )
                raise InternalError(f"{stage_key} transition failed") from exc

            duration = time.perf_counter() - started
            observe_transition(stage_key, "success", duration)
            logger.info(
                "transition.completed",
                extra={
                    **log_fields,
                    "duration_ms": round(duration * 1000, 2),
                    "document_count": len(result.data.get("documents", [])),
                },
            )
            return result

    def _execute_stage(
        self,
        session: Session,
        definition: StageDefinition,
        deadline: TransitionDeadline,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        payload: BaseModel | dict[str, Any] | None,
        files: Mapping[str, Sequence[UploadedFile]] | None,
    ) -> TransitionResult:
        # 1. validate
        request = parse_payload(definition.request_model, payload if payload is not None else {})
        normalized = _normalize_files(files)
        _validate_files(definition, normalized)
        lead = load_lead(session, vendor_id, lead_id, for_update=True)
        load_vendor_user(session, vendor_id, user_id)
        assignee_id = definition.assignee(request) if definition.assignee else None
        if assignee_id is not None:
            load_vendor_user(session, vendor_id, assignee_id)
        scope = TransitionScope(
            session=session,
            vendor_id=vendor_id,
            user_id=user_id,
            lead=lead,
            request=request,
            files=normalized,
        )
        if definition.validate is not None:
            definition.validate(scope)
        if definition.next_status is not None:
            ensure_forward(session, lead, definition.next_status)
        deadline.check("validate")

        # 2. resolve tags
        fields_with_files = [f for f in definition.files if normalized.get(f.name)]
        doc_type_ids = resolve_document_types(session, vendor_id, [f.document_tag for f in fields_with_files])
        amount = definition.payment_amount(request) if definition.payment_amount else None
        payment_type_id = (
            resolve_payment_type(session, vendor_id, definition.payment_tag)
            if definition.payment_tag is not None and amount is not None
            else None
        )
        next_status_id = resolve_status(session, vendor_id, definition.next_status) if definition.next_status else None
        deadline.check("resolve")

        # 3. documents
        created_documents: list[LeadDocument] = []
        for file_field in fields_with_files:
            scope.documents[file_field.name] = []
            for upload in normalized[file_field.name]:
                key = build_object_key(file_field.category, vendor_id, lead.id, upload.filename)
                self.object_store.put(key, upload.content, upload.content_type)
                document = LeadDocument(
                    vendor_id=vendor_id,
                    lead_id=lead.id,
                    account_id=lead.account_id,
                    doc_type_id=doc_type_ids[str(file_field.document_tag)],
                    doc_og_name=upload.filename,
                    doc_sys_name=key,
                    tech_check_status=file_field.tech_check_status,
                    created_by=user_id,
                )
                session.add(document)
                scope.documents[file_field.name].append(document)
                created_documents.append(document)
                deadline.check("upload")
        session.flush()
        observe_documents_uploaded(definition.key, len(created_documents))

        # 4. payments
        if payment_type_id is not None and amount is not None:
            proof_id = next(
                (
                    scope.documents[f.name][0].id
                    for f in fields_with_files
                    if f.payment_proof and scope.documents.get(f.name)
                ),
                None,
            )
            payment_date = getattr(request, "payment_date", None) or utcnow()
            payment = PaymentInfo(
                vendor_id=vendor_id,
                lead_id=lead.id,
                account_id=lead.account_id,
                payment_type_id=payment_type_id,
                amount=amount,
                payment_text=getattr(request, "payment_text", None),
                payment_file_id=proof_id,
                payment_date=payment_date,
                created_by=user_id,
            )
            ledger = LedgerEntry(
                vendor_id=vendor_id,
                lead_id=lead.id,
                account_id=lead.account_id,
                amount=amount,
                type="credit",
                payment_date=payment_date,
                created_by=user_id,
            )
            session.add_all([payment, ledger])
            session.flush()
            scope.data["payment_id"] = payment.id
            scope.data["ledger_id"] = ledger.id
        deadline.check("payments")

        # 5. lead status and stage fields
        if definition.apply is not None:
            definition.apply(scope)
        if next_status_id is not None:
            previous_status_id = lead.status_id
            write_status_change(session, lead, next_status_id, user_id)
            scope.data["status"] = {"from": previous_status_id, "to": next_status_id}
        lead.updated_by = user_id
        deadline.check("status")

        # 6. tasks and assignment
        if definition.closes_task_type:
            scope.data["closed_task_ids"] = close_open_tasks(session, lead.vendor_id, lead.id, definition.closes_task_type, user_id)
        if definition.mapping_type and assignee_id is not None:
            mapping = add_mapping(session, lead.vendor_id, lead.id, lead.account_id, assignee_id, definition.mapping_type, user_id)
            scope.data["mapping_id"] = mapping.id

        # 7. audit
        counts = {
            (f.singular, f.plural): len(scope.documents.get(f.name, []))
            for f in definition.files
        }
        action = definition.describe(scope) if definition.describe is not None else definition.action
        message = compose_message(action, counts, getattr(request, "remark", None))
        log = write_detailed_log(session, lead, message, definition.key, user_id)
        link_documents(session, log, created_documents, user_id)
        deadline.check("audit")

        # 8. result
        data = {
            "lead_id": lead.id,
            "log_id": log.id,
            "documents": [
                {"id": document.id, "doc_og_name": document.doc_og_name, "doc_sys_name": document.doc_sys_name}
                for document in created_documents
            ],
            **scope.data,
        }
        return TransitionResult(success=True, message=message, data=data)

    def approve_tech_check(
        self,
        session: Session,
        *,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        payload: ApproveTechCheckRequest | dict[str, Any],
    ) -> TransitionResult:
        def body(deadline: TransitionDeadline) -> TransitionResult:
            request = parse_payload(ApproveTechCheckRequest, payload)
            lead = load_lead(session, vendor_id, lead_id, for_update=True)
            assignee = load_vendor_user(session, vendor_id, request.assign_to)
            ensure_forward(session, lead, StatusTag.ORDER_LOGIN)
            status_id = resolve_status(session, vendor_id, StatusTag.ORDER_LOGIN)
            previous_status_id = lead.status_id
            write_status_change(session, lead, status_id, user_id)
            mapping = add_mapping(session, vendor_id, lead.id, lead.account_id, assignee.id, "order-login-stage", user_id)
            message = compose_message(
                f"Tech check approved and lead moved to order login, assigned to {assignee.user_name}",
                remark=request.remark,
            )
            log = write_detailed_log(session, lead, message, "tech-check-approve", user_id)
            return TransitionResult(
                message=message,
                data={
                    "lead_id": lead.id,
                    "log_id": log.id,
                    "mapping_id": mapping.id,
                    "status": {"from": previous_status_id, "to": status_id},
                },
            )

        return self._run(
            session,
            stage_key="tech-check-approve",
            vendor_id=vendor_id,
            lead_id=lead_id,
            timeout=get_settings().transition_timeout_seconds,
            body=body,
        )

    def review_tech_check_documents(
        self,
        session: Session,
        *,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        payload: TechCheckReviewRequest | dict[str, Any],
    ) -> TransitionResult:
        """Approve or reject client-documentation files; the lead's stage is unchanged."""

        def body(deadline: TransitionDeadline) -> TransitionResult:
            request = parse_payload(TechCheckReviewRequest, payload)
            lead = load_lead(session, vendor_id, lead_id, for_update=True)
            documents = session.scalars(
                select(LeadDocument)
                .join(DocumentTypeMaster, DocumentTypeMaster.id == LeadDocument.doc_type_id)
                .where(
                    LeadDocument.id.in_(request.doc_ids),
                    LeadDocument.vendor_id == vendor_id,
                    LeadDocument.lead_id == lead.id,
                    LeadDocument.is_deleted.is_(False),
                    DocumentTypeMaster.tag.in_([str(tag) for tag in CLIENT_DOCUMENTATION_TAGS]),
                )
            ).all()
            if not documents:
                raise ValidationError("no client documentation files matched the given doc_ids")
            for document in documents:
                document.tech_check_status = request.decision
            session.flush()

            verb = "approved" if request.decision == "approved" else "rejected"
            message = compose_message(
                f"Tech check {verb} for client documentation",
                {("document", "documents"): len(documents)},
                request.remark,
                verb="reviewed",
            )
            log = write_detailed_log(session, lead, message, f"tech-check-{verb}", user_id)
            link_documents(session, log, documents, user_id)
            return TransitionResult(
                message=message,
                data={
                    "lead_id": lead.id,
                    "log_id": log.id,
                    "documents": [{"id": d.id, "tech_check_status": d.tech_check_status} for d in documents],
                },
            )

        return self._run(
            session,
            stage_key="tech-check-review",
            vendor_id=vendor_id,
            lead_id=lead_id,
            timeout=get_settings().transition_timeout_seconds,
            body=body,
        )

    def update_dispatch_planning_info(
        self,
        session: Session,
        *,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        payload: DispatchInfoUpdate | dict[str, Any],
    ) -> TransitionResult:
        def body(deadline: TransitionDeadline) -> TransitionResult:
            request = parse_payload(DispatchInfoUpdate, payload)
            lead = load_lead(session, vendor_id, lead_id, for_update=True)
            changes = request.model_dump(exclude_unset=True)
            if not changes:
                raise ValidationError("no dispatch planning fields supplied")
            for attribute, value in changes.items():
                setattr(lead, attribute, value)
            lead.updated_by = user_id
            message = compose_message(
                "Dispatch planning details updated",
                remark=request.dispatch_planning_remark,
            )
            log = write_detailed_log(session, lead, message, "dispatch-planning-info", user_id)
            return TransitionResult(
                message=message,
                data={"lead_id": lead.id, "log_id": log.id, "updated_fields": sorted(changes)},
            )

        return self._run(
            session,
            stage_key="dispatch-planning-info",
            vendor_id=vendor_id,
            lead_id=lead_id,
            timeout=get_settings().transition_timeout_seconds,
            body=body,
        )

    def move_with_gate(
        self,
        session: Session,
        *,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        target: StatusTag,
        action: str,
        gate: Callable[[Session, int, int], ReadinessReport] | None = None,
        payload: StageMoveRequest | dict[str, Any] | None = None,
    ) -> TransitionResult:
        """Advance a lead to `target`, first checking the readiness gate when one is given."""
        stage_key = f"move-{target.name.lower().replace('_', '-')}"

        def body(deadline: TransitionDeadline) -> TransitionResult:
            request = parse_payload(StageMoveRequest, payload if payload is not None else {})
            report = gate(session, vendor_id, lead_id) if gate is not None else None
            if report is not None and not report.ready:
                raise ValidationError(f"lead {lead_id} is not ready: {report.reasons}")
            lead = load_lead(session, vendor_id, lead_id, for_update=True)
            ensure_forward(session, lead, target)
            status_id = resolve_status(session, vendor_id, target)
            previous_status_id = lead.status_id
            write_status_change(session, lead, status_id, user_id)
            message = compose_message(action, remark=request.remark)
            log = write_detailed_log(session, lead, message, stage_key, user_id)
            return TransitionResult(
                message=message,
                data={
                    "lead_id": lead.id,
                    "log_id": log.id,
                    "status": {"from": previous_status_id, "to": status_id},
                    "readiness": report.reasons if report is not None else {},
                },
            )

        return self._run(
            session,
            stage_key=stage_key,
            vendor_id=vendor_id,
            lead_id=lead_id,
            timeout=get_settings().transition_timeout_seconds,
            body=body,
        )

    def move_to_ready_to_dispatch(self, session: Session, **kwargs: Any) -> TransitionResult:
        return self.move_with_gate(
            session,
            target=StatusTag.READY_TO_DISPATCH,
            gate=readiness.post_production,
            action="Lead moved to ready to dispatch",
            **kwargs,
        )

    def move_to_dispatch_planning(self, session: Session, **kwargs: Any) -> TransitionResult:
        return self.move_with_gate(
            session,
            target=StatusTag.DISPATCH_PLANNING,
            gate=readiness.site_readiness,
            action="Lead moved to dispatch planning",
            **kwargs,
        )

    def move_to_dispatch(self, session: Session, **kwargs: Any) -> TransitionResult:
        return self.move_with_gate(
            session,
            target=StatusTag.DISPATCH,
            gate=readiness.dispatch_info,
            action="Lead moved to dispatch",
            **kwargs,
        )

    def move_to_under_installation(self, session: Session, **kwargs: Any) -> TransitionResult:
        return self.move_with_gate(
            session,
            target=StatusTag.UNDER_INSTALLATION,
            action="Lead moved to under installation",
            **kwargs,
        )

    def move_to_final_handover(self, session: Session, **kwargs: Any) -> TransitionResult:
        return self.move_with_gate(
            session,
            target=StatusTag.FINAL_HANDOVER,
            gate=readiness.final_handover,
            action="Lead moved to final handover",
            **kwargs,
        )

    def complete_lead(self, session: Session, **kwargs: Any) -> TransitionResult:
        return self.move_with_gate(
            session,
            target=StatusTag.COMPLETED,
            gate=readiness.project_paid,
            action="Project completed",
            **kwargs,
        )


def close_open_tasks(session: Session, vendor_id: int, lead_id: int, task_type: str, user_id: int) -> list[int]:
    task_ids = session.scalars(
        select(UserLeadTask.id).where(
            UserLeadTask.vendor_id == vendor_id,
            UserLeadTask.lead_id == lead_id,
            func.lower(UserLeadTask.task_type) == task_type.lower(),
            UserLeadTask.status == "open",
        )
    ).all()
    if task_ids:
        now = utcnow()
        session.execute(
            update(UserLeadTask)
            .where(UserLeadTask.id.in_(task_ids))
            .values(status="completed", closed_by=user_id, closed_at=now, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
    return list(task_ids)


def add_mapping(
    session: Session,
    vendor_id: int,
    lead_id: int,
    account_id: int | None,
    user_id: int,
    mapping_type: str,
    created_by: int,
) -> LeadUserMapping:
    mapping = LeadUserMapping(
        vendor_id=vendor_id,
        lead_id=lead_id,
        account_id=account_id,
        user_id=user_id,
        type=mapping_type,
        status="active",
        created_by=created_by,
    )
    session.add(mapping)
    session.flush()
    return mapping
