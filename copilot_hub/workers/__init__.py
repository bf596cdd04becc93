# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Background workers."""
from copilot_hub.workers.expiry_sweep import ExpirySweeper, SweepReport
from copilot_hub.workers.scheduler import RecurringTask

__all__ = ["ExpirySweeper", "RecurringTask", "SweepReport"]
