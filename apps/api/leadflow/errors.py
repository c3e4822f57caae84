from __future__ import annotations


class LeadflowError(Exception):
    """Base class for errors surfaced structurally at the transition boundary."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(LeadflowError):
    """Missing or malformed input; the caller can correct it."""

    code = "validation_error"
    status_code = 400


class ConfigurationError(LeadflowError):
    """A vendor has not configured a status/document/payment tag the engine needs."""

    code = "configuration_error"
    status_code = 422

    def __init__(self, kind: str, tag: str, vendor_id: int) -> None:
        self.kind = kind
        self.tag = tag
        self.vendor_id = vendor_id
        super().__init__(f"{kind} type '{tag}' not configured for vendor {vendor_id}")


class NotFoundError(LeadflowError):
    code = "not_found"
    status_code = 404


class AuthorizationError(LeadflowError):
    """Cross-vendor reference or otherwise forbidden access."""

    code = "forbidden"
    status_code = 403


class InternalError(LeadflowError):
    code = "internal_error"
    status_code = 500
