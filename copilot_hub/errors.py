# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Error taxonomy shared by REST routes, socket handlers and background workers."""
from typing import Any, Dict, Optional


class CopilotHubError(Exception):
    """Base class for errors reported to callers as a structured payload."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "detail": self.detail, "code": self.code}


class SessionValidationError(CopilotHubError):
    """Malformed or missing input. Nothing was mutated."""

    status_code = 400
    code = "validation_error"


class ForbiddenError(CopilotHubError):
    """Caller is not allowed to act on the session."""

    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Forbidden", detail: Optional[str] = None):
        super().__init__(message, detail)


class NotJoinedError(ForbiddenError):
    """Connection acted on a room it never joined."""

    def __init__(self, message: str = "Join session first"):
        super().__init__(message)


class SessionNotFoundError(CopilotHubError):
    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Session not found"):
        super().__init__(message)


class SessionStateError(CopilotHubError):
    """The session status does not allow the requested action."""

    status_code = 409
    code = "invalid_state"


class InsufficientCreditsError(CopilotHubError):
    """Wallet balance could not cover the finalize delta."""

    status_code = 402
    code = "insufficient_credits"

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class ProviderNotConfiguredError(CopilotHubError):
    """The selected AI provider has no API key."""

    status_code = 503
    code = "provider_not_configured"

    def __init__(self, provider: str):
        super().__init__(f"{provider} API key not configured")
        self.provider = provider


class UnsupportedProviderError(CopilotHubError):
    status_code = 400
    code = "unsupported_provider"

    def __init__(self, provider: str):
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class UpstreamProviderError(CopilotHubError):
    """AI provider answered with a non-2xx status or the transport failed."""

    status_code = 502
    code = "upstream_error"

    def __init__(self, provider: str, message: str, upstream_status: Optional[int] = None):
        super().__init__(f"{provider} request failed: {message}")
        self.provider = provider
        self.upstream_status = upstream_status
