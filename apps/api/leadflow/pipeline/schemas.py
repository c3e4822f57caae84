from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from leadflow.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: type[ModelT], payload: ModelT | dict[str, Any]) -> ModelT:
    """Validate a raw payload once at the boundary, reporting failures as ValidationError."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "invalid payload")
        raise ValidationError(f"{location}: {message}" if location else message) from exc


@dataclass(frozen=True, slots=True)
class UploadedFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class TransitionResult(BaseModel):
    success: bool = True
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class LeadListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vendor_id: int
    account_id: int | None
    status_id: int | None
    activity_status: str
    firstname: str
    lastname: str | None
    contact_no: str | None
    email: str | None
    created_at: datetime
    updated_at: datetime


class StageListResponse(BaseModel):
    total: int
    page: int
    limit: int
    data: list[LeadListItem]


class LeadCreate(BaseModel):
    firstname: str = Field(min_length=1, max_length=255)
    lastname: str | None = Field(default=None, max_length=255)
    contact_no: str | None = Field(default=None, max_length=32)
    email: str | None = None
    notes: str | None = None
    account_id: int | None = None
    assign_to: int | None = None


class RemarkMixin(BaseModel):
    remark: str | None = None


class BookingRequest(RemarkMixin):
    total_project_amount: Decimal | None = Field(default=None, gt=0)
    booking_amount: Decimal = Field(gt=0)
    payment_text: str | None = None
    payment_date: datetime | None = None
    final_desc_note: str | None = None
    site_supervisor_id: int | None = None

    @model_validator(mode="after")
    def booking_within_total(self) -> BookingRequest:
        if self.total_project_amount is not None and self.booking_amount > self.total_project_amount:
            raise ValueError("booking_amount cannot exceed total_project_amount")
        return self


class FinalMeasurementRequest(RemarkMixin):
    final_desc_note: str | None = None


class ClientDocumentationRequest(RemarkMixin):
    pass


class ClientApprovalRequest(RemarkMixin):
    amount_paid: Decimal | None = Field(default=None, gt=0)
    payment_text: str | None = None
    payment_date: datetime | None = None


class TechCheckRequest(RemarkMixin):
    assign_to: int
    client_required_order_login_date: datetime | None = None


class SiteReadinessItemInput(BaseModel):
    type: str = Field(min_length=1, max_length=64)
    value: bool | None = None
    remark: str | None = None


class SiteReadinessRequest(RemarkMixin):
    items: list[SiteReadinessItemInput] = Field(default_factory=list)


class DispatchPlanningPaymentRequest(RemarkMixin):
    amount: Decimal = Field(gt=0)
    payment_text: str | None = None
    payment_date: datetime | None = None


class FinalHandoverRequest(RemarkMixin):
    pass


class DocumentUploadRequest(RemarkMixin):
    pass


class OrderLoginItemInput(BaseModel):
    item_type: str = Field(min_length=1, max_length=64)
    item_desc: str = Field(min_length=1)


class OrderLoginItemsRequest(RemarkMixin):
    items: list[OrderLoginItemInput] = Field(min_length=1)


class ProductionRequest(RemarkMixin):
    assign_to: int | None = None
    client_required_order_login_completion_date: datetime | None = None


class InstallationDayWiseRequest(RemarkMixin):
    update_date: datetime


class InstallationCompletionRequest(RemarkMixin):
    is_carcass_installation_completed: bool | None = None
    is_shutter_installation_completed: bool | None = None

    @model_validator(mode="after")
    def at_least_one_flag(self) -> InstallationCompletionRequest:
        if self.is_carcass_installation_completed is None and self.is_shutter_installation_completed is None:
            raise ValueError("carcass or shutter completion status is required")
        return self


class InstallationMiscellaneousRequest(RemarkMixin):
    problem_description: str = Field(min_length=1)


class ApproveTechCheckRequest(RemarkMixin):
    assign_to: int


class TechCheckReviewRequest(RemarkMixin):
    doc_ids: list[int] = Field(min_length=1)
    decision: Literal["approved", "rejected"]


class StageMoveRequest(RemarkMixin):
    pass


class DispatchInfoUpdate(BaseModel):
    required_date_for_dispatch: datetime | None = None
    onsite_contact_person_name: str | None = None
    onsite_contact_person_number: str | None = None
    material_lift_availability: bool | None = None
    dispatch_planning_remark: str | None = None


class TaskAssignRequest(BaseModel):
    task_type: str = Field(min_length=1, max_length=64)
    due_date: datetime
    user_id: int
    remark: str | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vendor_id: int
    lead_id: int
    user_id: int
    task_type: str
    due_date: datetime
    remark: str | None
    status: str
    closed_by: int | None
    closed_at: datetime | None
    created_by: int
    created_at: datetime


class ActivityStatusUpdate(BaseModel):
    activity_status: Literal["onHold", "lost", "lostApproval"]
    remark: str = Field(min_length=1)
    due_date: datetime | None = None

    @model_validator(mode="after")
    def on_hold_needs_due_date(self) -> ActivityStatusUpdate:
        if not self.remark.strip():
            raise ValueError("remark is required")
        if self.activity_status == "onHold" and self.due_date is None:
            raise ValueError("due_date is required when putting a lead on hold")
        return self


class ActivityStatusRevert(BaseModel):
    remark: str = Field(min_length=1)

    @model_validator(mode="after")
    def remark_not_blank(self) -> ActivityStatusRevert:
        if not self.remark.strip():
            raise ValueError("remark is required")
        return self


class ReadinessReport(BaseModel):
    ready: bool
    reasons: dict[str, Any]
