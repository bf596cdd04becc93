# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for event kinds and wire names."""
from copilot_hub.realtime.events import (
    CopilotEvent,
    MeetingEvent,
    error_event_for,
    inbound_wire_names,
    parse_wire_name,
    wire_names,
)


class TestWireNames:
    def test_copilot_events_have_two_names(self):
        assert wire_names(CopilotEvent.AI_TOKEN) == ("copilot_ai_token", "copilot:ai_token")

    def test_meeting_events_have_one_name(self):
        assert wire_names(MeetingEvent.STATUS) == ("meeting_status",)

    def test_either_inbound_name_maps_to_the_same_event(self):
        assert parse_wire_name("copilot_join") is CopilotEvent.JOIN
        assert parse_wire_name("copilot:join") is CopilotEvent.JOIN
        assert parse_wire_name("meeting_end") is MeetingEvent.END

    def test_outbound_and_unknown_names_are_not_accepted(self):
        assert parse_wire_name("copilot_ai_token") is None
        assert parse_wire_name("copilot_nope") is None
        assert parse_wire_name("meeting_status") is None
        assert parse_wire_name("join") is None

    def test_inbound_registration_list(self):
        names = inbound_wire_names()
        assert "copilot_capture_upload" in names
        assert "copilot:capture_upload" in names
        assert "meeting_transcript_interim" in names
        assert len(names) == len(set(names))

    def test_error_family(self):
        assert error_event_for(CopilotEvent.JOIN) is CopilotEvent.ERROR
        assert error_event_for(MeetingEvent.JOIN) is MeetingEvent.ERROR
