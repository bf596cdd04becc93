# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Pydantic schemas for REST bodies and socket payloads."""
from copilot_hub.models.api.common_schema import ErrorResponse, HealthResponse

__all__ = ["ErrorResponse", "HealthResponse"]
