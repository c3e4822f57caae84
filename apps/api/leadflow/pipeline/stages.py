from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.errors import ValidationError
from leadflow.pipeline import readiness
from leadflow.pipeline.audit import format_due_date
from leadflow.pipeline.models import Lead, LeadDocument, OrderLoginItem, SiteReadinessItem
from leadflow.pipeline.schemas import (
    BookingRequest,
    ClientApprovalRequest,
    ClientDocumentationRequest,
    DispatchPlanningPaymentRequest,
    DocumentUploadRequest,
    FinalHandoverRequest,
    FinalMeasurementRequest,
    InstallationCompletionRequest,
    InstallationDayWiseRequest,
    InstallationMiscellaneousRequest,
    OrderLoginItemsRequest,
    ProductionRequest,
    SiteReadinessRequest,
    TechCheckRequest,
    UploadedFile,
)
from leadflow.pipeline.tags import SITE_READINESS_ITEMS, DocumentTag, PaymentTag, StatusTag


@dataclass(frozen=True, slots=True)
class FileField:
    name: str
    document_tag: DocumentTag
    category: str
    singular: str
    plural: str
    min_count: int = 1
    max_count: int | None = None
    tech_check_status: str | None = None
    payment_proof: bool = False


@dataclass(slots=True)
class TransitionScope:
    """Mutable state carried through one transition."""

    session: Session
    vendor_id: int
    user_id: int
    lead: Lead
    request: Any
    files: dict[str, list[UploadedFile]]
    documents: dict[str, list[LeadDocument]] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StageDefinition:
    key: str
    action: str
    request_model: type[BaseModel]
    files: tuple[FileField, ...] = ()
    payment_tag: PaymentTag | None = None
    payment_amount: Callable[[Any], Decimal | None] | None = None
    next_status: StatusTag | None = None
    closes_task_type: str | None = None
    mapping_type: str | None = None
    require_any_file: bool = False
    timeout_seconds: float | None = None
    assignee: Callable[[Any], int | None] | None = None
    validate: Callable[[TransitionScope], None] | None = None
    apply: Callable[[TransitionScope], None] | None = None
    describe: Callable[[TransitionScope], str] | None = None


def _booking_apply(scope: TransitionScope) -> None:
    request: BookingRequest = scope.request
    lead = scope.lead
    if request.total_project_amount is not None:
        lead.total_project_amount = request.total_project_amount
        lead.pending_amount = request.total_project_amount - request.booking_amount
    lead.booking_amount = request.booking_amount
    if request.final_desc_note is not None:
        lead.final_desc_note = request.final_desc_note


def _final_measurement_apply(scope: TransitionScope) -> None:
    request: FinalMeasurementRequest = scope.request
    if request.final_desc_note is not None:
        scope.lead.final_desc_note = request.final_desc_note


def _reduce_pending(lead: Lead, amount: Decimal | None) -> None:
    if amount is None or lead.pending_amount is None:
        return
    lead.pending_amount = lead.pending_amount - amount


def _ensure_within_pending(lead: Lead, amount: Decimal) -> None:
    pending = lead.pending_amount if lead.pending_amount is not None else Decimal("0")
    if amount > pending:
        raise ValidationError(f"payment amount {amount} exceeds pending amount {pending}")


def _client_approval_validate(scope: TransitionScope) -> None:
    request: ClientApprovalRequest = scope.request
    if request.amount_paid is not None and scope.lead.pending_amount is not None:
        _ensure_within_pending(scope.lead, request.amount_paid)


def _client_approval_apply(scope: TransitionScope) -> None:
    request: ClientApprovalRequest = scope.request
    _reduce_pending(scope.lead, request.amount_paid)


def _tech_check_apply(scope: TransitionScope) -> None:
    request: TechCheckRequest = scope.request
    if request.client_required_order_login_date is not None:
        scope.lead.client_required_order_login_date = request.client_required_order_login_date


def _site_readiness_validate(scope: TransitionScope) -> None:
    request: SiteReadinessRequest = scope.request
    unknown = sorted({item.type for item in request.items} - set(SITE_READINESS_ITEMS))
    if unknown:
        raise ValidationError(f"unknown site readiness items: {', '.join(unknown)}")


def _site_readiness_apply(scope: TransitionScope) -> None:
    request: SiteReadinessRequest = scope.request
    session = scope.session
    lead = scope.lead
    existing = {
        row.type: row
        for row in session.scalars(select(SiteReadinessItem).where(SiteReadinessItem.lead_id == lead.id)).all()
    }
    item_ids: list[int] = []
    for item in request.items:
        row = existing.get(item.type)
        if row is None:
            row = SiteReadinessItem(
                vendor_id=lead.vendor_id,
                lead_id=lead.id,
                account_id=lead.account_id,
                type=item.type,
                created_by=scope.user_id,
            )
            session.add(row)
            existing[item.type] = row
        row.value = item.value
        row.remark = item.remark
        session.flush()
        item_ids.append(row.id)
    scope.data["site_readiness_item_ids"] = item_ids


def _dispatch_payment_validate(scope: TransitionScope) -> None:
    request: DispatchPlanningPaymentRequest = scope.request
    _ensure_within_pending(scope.lead, request.amount)


def _dispatch_payment_apply(scope: TransitionScope) -> None:
    request: DispatchPlanningPaymentRequest = scope.request
    scope.lead.pending_amount = (scope.lead.pending_amount or Decimal("0")) - request.amount


def _order_login_items_validate(scope: TransitionScope) -> None:
    request: OrderLoginItemsRequest = scope.request
    requested = [item.item_type.strip() for item in request.items]
    repeated = sorted({item_type for item_type in requested if requested.count(item_type) > 1})
    if repeated:
        raise ValidationError(f"duplicate order login items: {', '.join(repeated)}")
    open_items = set(
        scope.session.scalars(
            select(OrderLoginItem.item_type).where(
                OrderLoginItem.vendor_id == scope.vendor_id,
                OrderLoginItem.lead_id == scope.lead.id,
                OrderLoginItem.item_type.in_(requested),
                OrderLoginItem.is_completed.is_(False),
            )
        ).all()
    )
    if open_items:
        raise ValidationError(f"order login items already logged: {', '.join(sorted(open_items))}")


def _order_login_items_apply(scope: TransitionScope) -> None:
    request: OrderLoginItemsRequest = scope.request
    lead = scope.lead
    rows = [
        OrderLoginItem(
            vendor_id=lead.vendor_id,
            lead_id=lead.id,
            account_id=lead.account_id,
            item_type=item.item_type.strip(),
            item_desc=item.item_desc,
            created_by=scope.user_id,
        )
        for item in request.items
    ]
    scope.session.add_all(rows)
    scope.session.flush()
    scope.data["order_login_item_ids"] = [row.id for row in rows]


def _order_login_items_describe(scope: TransitionScope) -> str:
    request: OrderLoginItemsRequest = scope.request
    return f"Order login items added: {', '.join(item.item_type.strip() for item in request.items)}"


def _production_validate(scope: TransitionScope) -> None:
    report = readiness.production(scope.session, scope.vendor_id, scope.lead.id)
    if not report.ready:
        raise ValidationError(f"lead {scope.lead.id} is not ready for production: {report.reasons}")


def _production_apply(scope: TransitionScope) -> None:
    request: ProductionRequest = scope.request
    if request.client_required_order_login_completion_date is not None:
        scope.lead.client_required_order_login_completion_date = request.client_required_order_login_completion_date


def _packing_validate(file_name: str) -> Callable[[TransitionScope], None]:
    def validate(scope: TransitionScope) -> None:
        remark = (scope.request.remark or "").strip()
        if not scope.files.get(file_name) and not remark:
            raise ValidationError(f"{file_name} or a remark is required")

    return validate


def _packing_apply(attribute: str) -> Callable[[TransitionScope], None]:
    def apply(scope: TransitionScope) -> None:
        remark = (scope.request.remark or "").strip()
        if remark:
            setattr(scope.lead, attribute, remark)

    return apply


def _day_wise_describe(scope: TransitionScope) -> str:
    request: InstallationDayWiseRequest = scope.request
    return f"Installation update for {format_due_date(request.update_date)}"


def _installation_completion_apply(scope: TransitionScope) -> None:
    request: InstallationCompletionRequest = scope.request
    lead = scope.lead
    now = datetime.now(timezone.utc)
    if request.is_carcass_installation_completed is not None:
        lead.is_carcass_installation_completed = request.is_carcass_installation_completed
        lead.carcass_installation_completion_date = now if request.is_carcass_installation_completed else None
    if request.is_shutter_installation_completed is not None:
        lead.is_shutter_installation_completed = request.is_shutter_installation_completed
        lead.shutter_installation_completion_date = now if request.is_shutter_installation_completed else None


def _installation_completion_describe(scope: TransitionScope) -> str:
    request: InstallationCompletionRequest = scope.request
    parts = []
    for label, flag in (
        ("Carcass", request.is_carcass_installation_completed),
        ("Shutter", request.is_shutter_installation_completed),
    ):
        if flag is not None:
            parts.append(f"{label} installation marked as {'completed' if flag else 'pending'}")
    return " & ".join(parts)


def _miscellaneous_describe(scope: TransitionScope) -> str:
    request: InstallationMiscellaneousRequest = scope.request
    return f"Installation issue reported: {request.problem_description.strip()}"


BOOKING = StageDefinition(
    key="booking",
    action="Booking stage completed",
    request_model=BookingRequest,
    timeout_seconds=15.0,
    files=(
        FileField("final_documents", DocumentTag.FINAL_DOCUMENTS, "booking-documents", "final document", "final documents"),
        FileField(
            "payment_proof",
            DocumentTag.FINAL_DOCUMENTS,
            "booking-payments",
            "payment proof",
            "payment proofs",
            min_count=0,
            max_count=1,
            payment_proof=True,
        ),
    ),
    payment_tag=PaymentTag.BOOKING_AMOUNT,
    payment_amount=lambda request: request.booking_amount,
    next_status=StatusTag.BOOKING,
    mapping_type="site-supervisor",
    assignee=lambda request: request.site_supervisor_id,
    apply=_booking_apply,
)

FINAL_MEASUREMENT = StageDefinition(
    key="final-measurement",
    action="Final measurement completed",
    request_model=FinalMeasurementRequest,
    files=(
        FileField(
            "final_measurement_doc",
            DocumentTag.FINAL_MEASUREMENT_DOC,
            "final-measurement-documents",
            "final measurement document",
            "final measurement documents",
            min_count=1,
            max_count=1,
        ),
        FileField(
            "site_photos",
            DocumentTag.CURRENT_SITE_PHOTOS,
            "final-measurement-site-photos",
            "site photo",
            "site photos",
        ),
    ),
    next_status=StatusTag.FINAL_MEASUREMENT,
    closes_task_type="Final Measurement",
    apply=_final_measurement_apply,
)

CLIENT_DOCUMENTATION = StageDefinition(
    key="client-documentation",
    action="Client documentation uploaded",
    request_model=ClientDocumentationRequest,
    files=(
        FileField(
            "ppt_files",
            DocumentTag.CLIENT_DOCUMENTATION,
            "client-documentation",
            "PPT file",
            "PPT files",
            min_count=0,
            tech_check_status="pending",
        ),
        FileField(
            "pytha_files",
            DocumentTag.CLIENT_DOCUMENTATION_PYTHA,
            "client-documentation",
            "Pytha file",
            "Pytha files",
            min_count=0,
            tech_check_status="pending",
        ),
    ),
    require_any_file=True,
    next_status=StatusTag.CLIENT_DOCUMENTATION,
)

CLIENT_APPROVAL = StageDefinition(
    key="client-approval",
    action="Client approval recorded",
    request_model=ClientApprovalRequest,
    files=(
        FileField(
            "approval_documents",
            DocumentTag.CLIENT_APPROVAL,
            "client-approval-documents",
            "approval document",
            "approval documents",
        ),
        FileField(
            "payment_proof",
            DocumentTag.CLIENT_APPROVAL,
            "client-approval-payments",
            "payment proof",
            "payment proofs",
            min_count=0,
            max_count=1,
            payment_proof=True,
        ),
    ),
    payment_tag=PaymentTag.CLIENT_APPROVAL,
    payment_amount=lambda request: request.amount_paid,
    next_status=StatusTag.CLIENT_APPROVAL,
    validate=_client_approval_validate,
    apply=_client_approval_apply,
)

REQUEST_TECH_CHECK = StageDefinition(
    key="request-tech-check",
    action="Lead moved to tech check",
    request_model=TechCheckRequest,
    next_status=StatusTag.TECH_CHECK,
    mapping_type="tech-check-stage",
    assignee=lambda request: request.assign_to,
    apply=_tech_check_apply,
)

PRODUCTION_FILES = StageDefinition(
    key="production-files",
    action="Production files uploaded",
    request_model=DocumentUploadRequest,
    files=(
        FileField("production_files", DocumentTag.PRODUCTION_FILES, "production-files", "production file", "production files"),
    ),
)

ORDER_LOGIN_ITEMS = StageDefinition(
    key="order-login-items",
    action="Order login items added",
    request_model=OrderLoginItemsRequest,
    validate=_order_login_items_validate,
    apply=_order_login_items_apply,
    describe=_order_login_items_describe,
)

PRODUCTION = StageDefinition(
    key="production",
    action="Lead moved to production",
    request_model=ProductionRequest,
    next_status=StatusTag.PRODUCTION,
    mapping_type="production-stage",
    assignee=lambda request: request.assign_to,
    validate=_production_validate,
    apply=_production_apply,
)

QC_PHOTOS = StageDefinition(
    key="qc-photos",
    action="QC photos uploaded",
    request_model=DocumentUploadRequest,
    files=(FileField("qc_photos", DocumentTag.QC_PHOTOS, "post-production-qc", "QC photo", "QC photos"),),
)

HARDWARE_PACKING = StageDefinition(
    key="hardware-packing",
    action="Hardware packing details updated",
    request_model=DocumentUploadRequest,
    files=(
        FileField(
            "hardware_packing_files",
            DocumentTag.HARDWARE_PACKING,
            "post-production-hardware-packing",
            "hardware packing document",
            "hardware packing documents",
            min_count=0,
        ),
    ),
    validate=_packing_validate("hardware_packing_files"),
    apply=_packing_apply("hardware_packing_details_remark"),
)

WOODWORK_PACKING = StageDefinition(
    key="woodwork-packing",
    action="Woodwork packing details updated",
    request_model=DocumentUploadRequest,
    files=(
        FileField(
            "woodwork_packing_files",
            DocumentTag.WOODWORK_PACKING,
            "post-production-woodwork-packing",
            "woodwork packing document",
            "woodwork packing documents",
            min_count=0,
        ),
    ),
    validate=_packing_validate("woodwork_packing_files"),
    apply=_packing_apply("woodwork_packing_details_remark"),
)

READY_TO_DISPATCH_PHOTOS = StageDefinition(
    key="ready-to-dispatch-photos",
    action="Ready to dispatch site photos uploaded",
    request_model=DocumentUploadRequest,
    files=(
        FileField(
            "current_site_photos",
            DocumentTag.READY_TO_DISPATCH_SITE_PHOTOS,
            "ready-to-dispatch-photos",
            "current site photo",
            "current site photos",
        ),
    ),
)

SITE_READINESS = StageDefinition(
    key="site-readiness",
    action="Site readiness checklist updated",
    request_model=SiteReadinessRequest,
    files=(
        FileField(
            "current_site_photos",
            DocumentTag.SITE_READINESS_PHOTO,
            "site-readiness-photos",
            "current site photo",
            "current site photos",
        ),
    ),
    closes_task_type="Site Readiness",
    validate=_site_readiness_validate,
    apply=_site_readiness_apply,
)

DISPATCH_PLANNING_PAYMENT = StageDefinition(
    key="dispatch-planning-payment",
    action="Dispatch planning payment recorded",
    request_model=DispatchPlanningPaymentRequest,
    files=(
        FileField(
            "payment_proof",
            DocumentTag.DISPATCH_PAYMENT_PROOF,
            "dispatch-planning-payments",
            "payment proof",
            "payment proofs",
            min_count=0,
            max_count=1,
            payment_proof=True,
        ),
    ),
    payment_tag=PaymentTag.DISPATCH_PLANNING,
    payment_amount=lambda request: request.amount,
    validate=_dispatch_payment_validate,
    apply=_dispatch_payment_apply,
)

FINAL_HANDOVER = StageDefinition(
    key="final-handover",
    action="Final handover documents uploaded",
    request_model=FinalHandoverRequest,
    require_any_file=True,
    files=(
        FileField("final_site_photos", DocumentTag.FINAL_SITE_PHOTOS, "final-handover", "final site photo", "final site photos", min_count=0),
        FileField("warranty_card", DocumentTag.WARRANTY_CARD, "final-handover", "warranty card", "warranty cards", min_count=0),
        FileField("handover_booklet", DocumentTag.HANDOVER_BOOKLET, "final-handover", "handover booklet", "handover booklets", min_count=0),
        FileField("final_handover_form", DocumentTag.FINAL_HANDOVER_FORM, "final-handover", "handover form", "handover forms", min_count=0),
        FileField("qc_document", DocumentTag.QC_DOCUMENT, "final-handover", "QC document", "QC documents", min_count=0),
    ),
)

INSTALLATION_DAY_WISE = StageDefinition(
    key="installation-day-wise",
    action="Installation update",
    request_model=InstallationDayWiseRequest,
    files=(
        FileField(
            "day_wise_files",
            DocumentTag.INSTALLATION_DAY_WISE,
            "installation-day-wise",
            "installation photo",
            "installation photos",
        ),
    ),
    describe=_day_wise_describe,
)

INSTALLATION_COMPLETION = StageDefinition(
    key="installation-completion",
    action="Installation completion status updated",
    request_model=InstallationCompletionRequest,
    apply=_installation_completion_apply,
    describe=_installation_completion_describe,
)

INSTALLATION_MISCELLANEOUS = StageDefinition(
    key="installation-miscellaneous",
    action="Installation issue reported",
    request_model=InstallationMiscellaneousRequest,
    files=(
        FileField(
            "miscellaneous_files",
            DocumentTag.INSTALLATION_MISCELLANEOUS,
            "installation-miscellaneous",
            "supporting document",
            "supporting documents",
            min_count=0,
        ),
    ),
    describe=_miscellaneous_describe,
)

STAGES: dict[str, StageDefinition] = {
    definition.key: definition
    for definition in (
        BOOKING,
        FINAL_MEASUREMENT,
        CLIENT_DOCUMENTATION,
        CLIENT_APPROVAL,
        REQUEST_TECH_CHECK,
        PRODUCTION_FILES,
        ORDER_LOGIN_ITEMS,
        PRODUCTION,
        QC_PHOTOS,
        HARDWARE_PACKING,
        WOODWORK_PACKING,
        READY_TO_DISPATCH_PHOTOS,
        SITE_READINESS,
        DISPATCH_PLANNING_PAYMENT,
        INSTALLATION_DAY_WISE,
        INSTALLATION_COMPLETION,
        INSTALLATION_MISCELLANEOUS,
        FINAL_HANDOVER,
    )
}


def get_stage(key: str) -> StageDefinition:
    try:
        return STAGES[key]
    except KeyError:
        raise ValidationError(f"unknown stage '{key}'") from None
