"""Typed exception hierarchy for wotcalc."""

from __future__ import annotations

from enum import Enum


class Status(str, Enum):
    """Protocol-neutral outcome of a request."""

    OK = "ok"
    CHANGED = "changed"
    BAD_REQUEST = "bad_request"
    OBSERVATION_REQUIRED = "observation_required"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    NOT_ACCEPTABLE = "not_acceptable"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    INTERNAL_ERROR = "internal_error"


# HTTP has no dedicated code for a missing observation flag; 400 with a
# distinct message keeps it apart from malformed operands.
HTTP_STATUS: dict[Status, int] = {
    Status.OK: 200,
    Status.CHANGED: 200,
    Status.BAD_REQUEST: 400,
    Status.OBSERVATION_REQUIRED: 400,
    Status.NOT_FOUND: 404,
    Status.METHOD_NOT_ALLOWED: 405,
    Status.NOT_ACCEPTABLE: 406,
    Status.UNSUPPORTED_MEDIA_TYPE: 415,
    Status.INTERNAL_ERROR: 500,
}


class WotCalcError(Exception):
    """Base class for all wotcalc errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(WotCalcError):
    """Raised for configuration issues (missing file, invalid JSON, validation failure)."""


class LoadError(WotCalcError):
    """Raised when a JSON file (config, Thing Model) cannot be loaded."""


class UnknownRepresentation(WotCalcError):
    """Raised when a negotiation token is not in the representation registry."""

    def __init__(self, token: str | None) -> None:
        self.token = token
        super().__init__(f"Unknown representation: {token!r}")


class RepresentationDecodeError(WotCalcError):
    """Raised when a payload cannot be decoded in its declared representation."""


class RepresentationEncodeError(WotCalcError):
    """Raised when a value cannot be encoded in the chosen representation."""


# === Request errors (mapped to protocol status codes) ===


class ThingError(WotCalcError):
    """Base class for errors answered to the requester with a status."""

    status: Status = Status.INTERNAL_ERROR

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.status]


class NotFoundError(ThingError):
    """Unknown Thing name or sub-resource."""

    status = Status.NOT_FOUND


class MethodNotAllowedError(ThingError):
    """Method not legal on the addressed resource."""

    status = Status.METHOD_NOT_ALLOWED

    def __init__(self, message: str, allowed: str) -> None:
        self.allowed = allowed
        super().__init__(message)


class NotAcceptableError(ThingError):
    """Requested response representation is not registered."""

    status = Status.NOT_ACCEPTABLE


class UnsupportedMediaTypeError(ThingError):
    """Declared request body representation is not registered."""

    status = Status.UNSUPPORTED_MEDIA_TYPE


class BadRequestError(ThingError):
    """Operand absent, undecodable, or not a finite number."""

    status = Status.BAD_REQUEST


class ObservationRequiredError(ThingError):
    """Read of a subscription-only affordance without the observation flag."""

    status = Status.OBSERVATION_REQUIRED
