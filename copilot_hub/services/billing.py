# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Billing calculator.

Pure functions converting a session's wall-clock span into billable minutes. They are
deterministic so that repeated finalize attempts always agree on the numbers.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from copilot_hub.utils.timeutils import as_utc

DEFAULT_GRACE_MINUTES = 3
SESSION_EXPIRY_GRACE_MINUTES = 10


@dataclass(frozen=True)
class BillingConfig:
    """Billing policy read at finalize time."""

    grace_seconds: int = DEFAULT_GRACE_MINUTES * 60
    hard_stop_enabled: bool = True

    @classmethod
    def from_settings(cls, grace_minutes: Optional[int], hard_stop_enabled: Optional[bool]) -> "BillingConfig":
        grace = DEFAULT_GRACE_MINUTES if grace_minutes is None else grace_minutes
        return cls(
            grace_seconds=max(0, int(grace)) * 60,
            # Only an explicit False disables the hard stop
            hard_stop_enabled=hard_stop_enabled is not False,
        )


@dataclass(frozen=True)
class ChargeQuote:
    """Numbers produced for one finalize attempt."""

    elapsed_seconds: int
    billable_seconds: int
    billable_minutes: int
    already_billed_minutes: int
    new_charge_minutes: int


def compute_elapsed_seconds(
    start: Optional[datetime],
    end: Optional[datetime],
    duration_minutes: Optional[int],
    hard_stop_enabled: bool,
) -> int:
    """Whole seconds between start and end, capped at the duration when hard stop applies."""
    start = as_utc(start)
    end = as_utc(end)
    if start is None or end is None or end <= start:
        return 0
    raw = int(math.floor((end - start).total_seconds()))
    if hard_stop_enabled and duration_minutes and duration_minutes > 0:
        return min(raw, int(duration_minutes) * 60)
    return raw


def compute_billable_seconds(elapsed_seconds: float, grace_seconds: float) -> int:
    """Elapsed time minus a flat grace deduction, never negative."""
    return max(0, int(math.floor(elapsed_seconds)) - max(0, int(math.floor(grace_seconds))))


def compute_billable_minutes(billable_seconds: float) -> int:
    """Partial minutes round up."""
    if billable_seconds <= 0:
        return 0
    return int(math.ceil(billable_seconds / 60))


def compute_charge_minutes(billable_seconds: int, billed_seconds: int) -> int:
    """Minutes still owed given what has already been charged."""
    already = compute_billable_minutes(billed_seconds or 0)
    return max(0, compute_billable_minutes(billable_seconds) - already)


def quote_charge(
    start: Optional[datetime],
    end: Optional[datetime],
    duration_minutes: Optional[int],
    billed_seconds: int,
    config: BillingConfig,
) -> ChargeQuote:
    elapsed = compute_elapsed_seconds(start, end, duration_minutes, config.hard_stop_enabled)
    billable = compute_billable_seconds(elapsed, config.grace_seconds)
    minutes = compute_billable_minutes(billable)
    already = compute_billable_minutes(billed_seconds or 0)
    return ChargeQuote(
        elapsed_seconds=elapsed,
        billable_seconds=billable,
        billable_minutes=minutes,
        already_billed_minutes=already,
        new_charge_minutes=max(0, minutes - already),
    )


def compute_expires_at(
    scheduled_at: Optional[datetime],
    duration_minutes: int,
    grace_minutes: int = SESSION_EXPIRY_GRACE_MINUTES,
) -> Optional[datetime]:
    """End of the window in which a scheduled session may still be used."""
    if scheduled_at is None:
        return None
    return as_utc(scheduled_at) + timedelta(minutes=max(0, duration_minutes) + grace_minutes)
