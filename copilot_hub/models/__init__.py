# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Models package - contains API schemas and database models."""

from copilot_hub.models import api, database

__all__ = ["api", "database"]
