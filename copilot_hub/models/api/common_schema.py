# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Response envelopes shared by every router."""
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from copilot_hub.errors import CopilotHubError
from copilot_hub.utils.timeutils import utcnow


class ErrorResponse(BaseModel):
    """Body of every domain error: 402 on shortfall, 403 on ownership, 404, 409 and the rest."""

    error: str = Field(..., description="Human readable message")
    detail: Optional[str] = Field(None, description="Extra context, when there is any")
    code: str = Field(..., description="Machine code, e.g. insufficient_credits")

    @classmethod
    def from_error(cls, exc: CopilotHubError) -> "ErrorResponse":
        return cls(**exc.to_dict())


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime = Field(default_factory=utcnow)
    version: str
    services: Dict[str, str] = Field(..., description="Provider keys, Redis fanout and the expiry sweep")
