from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Base class for every failure surfaced by the REST client."""

    code = "error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NetworkFailure(ApiError):
    code = "network_failure"


class ServerRejected(ApiError):
    code = "server_rejected"

    def __init__(self, status_code: int, body: str = "", *, message: str | None = None) -> None:
        text = body or ""
        super().__init__(
            message or (f"{status_code}: {text}" if text else str(status_code)),
            details={"status_code": status_code},
        )
        self.status_code = status_code
        self.body = text


class NotFound(ServerRejected):
    code = "not_found"


class AuthenticationRequired(ApiError):
    code = "authentication_required"

    def __init__(self, message: str = "Please login to continue") -> None:
        super().__init__(message)


class FetchError(ApiError):
    code = "fetch_error"


class MutationFailed(ApiError):
    code = "mutation_failed"


class SaveFailed(MutationFailed):
    code = "save_failed"


class UnsaveFailed(MutationFailed):
    code = "unsave_failed"


def code_for_status(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "validation_error",
        429: "rate_limited",
        500: "internal_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "error")
