# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Shared helpers."""
from copilot_hub.utils.timeutils import as_utc, isoformat, utcnow

__all__ = ["as_utc", "isoformat", "utcnow"]
