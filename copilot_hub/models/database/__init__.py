# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Public API for SQLAlchemy models."""
from copilot_hub.models.database.admin_settings_model import AdminSettings
from copilot_hub.models.database.copilot_sessions_model import (
    ConnectedDevice,
    CopilotAiMessage,
    CopilotSession,
    CopilotTopic,
    CopilotTranscriptEntry,
)
from copilot_hub.models.database.interviews_model import Interview
from copilot_hub.models.database.meetings_model import Meeting
from copilot_hub.models.database.sessions_model import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    CreditPool,
    SessionKind,
    SessionStatus,
)
from copilot_hub.models.database.users_model import User

__all__ = [
    "User",
    "Meeting",
    "Interview",
    "CopilotSession",
    "CopilotTranscriptEntry",
    "CopilotTopic",
    "CopilotAiMessage",
    "ConnectedDevice",
    "AdminSettings",
    "SessionStatus",
    "SessionKind",
    "CreditPool",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
]
