from __future__ import annotations

from typing import Iterable


class DashboardError(RuntimeError):
    """Error surfaced to API callers as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = int(status_code)


class AuthenticationRequired(DashboardError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class MissingParameters(DashboardError):
    status_code = 400

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = tuple(fields)
        super().__init__(f"Missing {'/'.join(self.fields)}")


class InvalidParameter(DashboardError):
    status_code = 400


class ProviderNotConfigured(DashboardError):
    status_code = 400


class UpstreamError(DashboardError):
    """Non-2xx reply from an external API; status is passed through."""

    def __init__(self, status_code: int, message: str, service: str = "") -> None:
        self.service = service
        super().__init__(message, status_code=status_code)


def require_params(**params: object) -> None:
    missing = [name for name, value in params.items() if value in (None, "")]
    if missing:
        raise MissingParameters(missing)
