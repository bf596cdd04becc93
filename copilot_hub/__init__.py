# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Copilot Hub: live interview sessions, billing and AI relay."""

__version__ = "0.1.0"
