from __future__ import annotations

from enum import StrEnum


class StatusTag(StrEnum):
    OPEN = "Type 1"
    INITIAL_SITE_MEASUREMENT = "Type 2"
    DESIGNING = "Type 3"
    BOOKING = "Type 4"
    FINAL_MEASUREMENT = "Type 5"
    CLIENT_DOCUMENTATION = "Type 6"
    CLIENT_APPROVAL = "Type 7"
    TECH_CHECK = "Type 8"
    ORDER_LOGIN = "Type 9"
    PRODUCTION = "Type 10"
    READY_TO_DISPATCH = "Type 11"
    SITE_READINESS = "Type 12"
    DISPATCH_PLANNING = "Type 13"
    DISPATCH = "Type 14"
    UNDER_INSTALLATION = "Type 15"
    FINAL_HANDOVER = "Type 16"
    COMPLETED = "Type 17"


STATUS_TAG_VALUES = frozenset(tag.value for tag in StatusTag)


def status_rank(tag: StatusTag) -> int:
    """Pipeline position; tags are numbered in fulfillment order."""
    return int(tag.value.split()[-1])


class DocumentTag(StrEnum):
    FINAL_DOCUMENTS = "Type 8"
    FINAL_MEASUREMENT_DOC = "Type 9"
    CURRENT_SITE_PHOTOS = "Type 10"
    CLIENT_DOCUMENTATION = "Type 11"
    CLIENT_DOCUMENTATION_PYTHA = "Type 12"
    CLIENT_APPROVAL = "Type 13"
    PRODUCTION_FILES = "Type 14"
    QC_PHOTOS = "Type 15"
    HARDWARE_PACKING = "Type 16"
    WOODWORK_PACKING = "Type 17"
    READY_TO_DISPATCH_SITE_PHOTOS = "Type 18"
    SITE_READINESS_PHOTO = "Type 19"
    DISPATCH_PAYMENT_PROOF = "Type 20"
    INSTALLATION_DAY_WISE = "Type 23"
    INSTALLATION_MISCELLANEOUS = "Type 24"
    FINAL_SITE_PHOTOS = "Type 27"
    WARRANTY_CARD = "Type 28"
    HANDOVER_BOOKLET = "Type 29"
    FINAL_HANDOVER_FORM = "Type 30"
    QC_DOCUMENT = "Type 31"


class PaymentTag(StrEnum):
    BOOKING_AMOUNT = "Type 2"
    CLIENT_APPROVAL = "Type 3"
    DISPATCH_PLANNING = "Type 5"


STATUS_SLUGS: dict[StatusTag, str] = {
    StatusTag.OPEN: "open",
    StatusTag.INITIAL_SITE_MEASUREMENT: "initial-site-measurement",
    StatusTag.DESIGNING: "designing-stage",
    StatusTag.BOOKING: "booking-stage",
    StatusTag.FINAL_MEASUREMENT: "final-site-measurement-stage",
    StatusTag.CLIENT_DOCUMENTATION: "client-documentation-stage",
    StatusTag.CLIENT_APPROVAL: "client-approval-stage",
    StatusTag.TECH_CHECK: "tech-check-stage",
    StatusTag.ORDER_LOGIN: "order-login-stage",
    StatusTag.PRODUCTION: "production-stage",
    StatusTag.READY_TO_DISPATCH: "ready-to-dispatch-stage",
    StatusTag.SITE_READINESS: "site-readiness-stage",
    StatusTag.DISPATCH_PLANNING: "dispatch-planning-stage",
    StatusTag.DISPATCH: "dispatch-stage",
    StatusTag.UNDER_INSTALLATION: "under-installation-stage",
    StatusTag.FINAL_HANDOVER: "final-handover-stage",
    StatusTag.COMPLETED: "completed",
}

# Display names used in task assignment audit messages.
STATUS_LABELS: dict[StatusTag, str] = {
    StatusTag.OPEN: "Open",
    StatusTag.INITIAL_SITE_MEASUREMENT: "Initial Site Measurement",
    StatusTag.DESIGNING: "Designing",
    StatusTag.BOOKING: "Booking",
    StatusTag.FINAL_MEASUREMENT: "Final Measurement",
    StatusTag.CLIENT_DOCUMENTATION: "Client Documentation",
    StatusTag.CLIENT_APPROVAL: "Client Approval",
    StatusTag.TECH_CHECK: "Tech Check",
    StatusTag.ORDER_LOGIN: "Order Login",
    StatusTag.PRODUCTION: "Production",
    StatusTag.READY_TO_DISPATCH: "Ready To Dispatch",
    StatusTag.SITE_READINESS: "Site Readiness",
    StatusTag.DISPATCH_PLANNING: "Dispatch Planning",
    StatusTag.DISPATCH: "Dispatch",
    StatusTag.UNDER_INSTALLATION: "Under Installation",
    StatusTag.FINAL_HANDOVER: "Final Handover",
    StatusTag.COMPLETED: "Completed",
}

# Files that go through tech-check review.
CLIENT_DOCUMENTATION_TAGS: tuple[DocumentTag, ...] = (
    DocumentTag.CLIENT_DOCUMENTATION,
    DocumentTag.CLIENT_DOCUMENTATION_PYTHA,
)

SITE_READINESS_ITEMS: tuple[str, ...] = (
    "civil_work_completed",
    "electrical_points_ready",
    "plumbing_points_ready",
    "flooring_completed",
    "painting_completed",
    "site_cleared_for_installation",
)

# Order-login breakups the factory needs before production starts.
ORDER_LOGIN_REQUIRED_ITEMS: tuple[str, ...] = ("Carcass", "Shutter", "Stock Hardware")

POST_PRODUCTION_DOCUMENTS: tuple[DocumentTag, ...] = (
    DocumentTag.QC_PHOTOS,
    DocumentTag.HARDWARE_PACKING,
    DocumentTag.WOODWORK_PACKING,
)

FINAL_HANDOVER_DOCUMENTS: tuple[DocumentTag, ...] = (
    DocumentTag.FINAL_SITE_PHOTOS,
    DocumentTag.WARRANTY_CARD,
    DocumentTag.HANDOVER_BOOKLET,
    DocumentTag.FINAL_HANDOVER_FORM,
    DocumentTag.QC_DOCUMENT,
)

ACTIVE_ACTIVITY_STATUSES = ("onGoing", "lostApproval")
ACTIVITY_STATUSES = ("onGoing", "onHold", "lost", "lostApproval")

FOLLOW_UP_TASK = "Follow Up"
PENDING_WORK_TASK = "Pending Work"
