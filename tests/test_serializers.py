"""Tests for the Twilio and Realtime serializers."""

import base64
import json

import pytest

from tablebridge.core.events import (
    AgentError,
    AudioDelta,
    AudioFrame,
    CallEnded,
    CallStarted,
    Codec,
    CustomEvent,
    SessionReady,
    TextDelta,
    TurnEnded,
    TurnStarted,
)
from tablebridge.serializers.realtime import (
    AUDIO_DELTA_TYPES,
    TEXT_DELTA_TYPES,
    RealtimeSerializer,
)
from tablebridge.serializers.twilio import TwilioSerializer

from conftest import agent_audio, twilio_media, twilio_start, twilio_stop


# ==========================================================================
# Twilio Serializer Tests
# ==========================================================================


class TestTwilioSerializer:

    @pytest.fixture
    def serializer(self):
        return TwilioSerializer()

    def test_connected_is_ignored(self, serializer):
        assert serializer.deserialize(json.dumps({"event": "connected", "protocol": "Call"})) == []

    def test_start(self, serializer):
        events = serializer.deserialize(json.dumps(twilio_start("MZ1", "CA1", table="4")))
        assert len(events) == 1
        event = events[0]
        assert isinstance(event, CallStarted)
        assert event.stream_id == "MZ1"
        assert event.call_id == "CA1"
        assert event.custom_parameters == {"table": "4"}
        assert event.metadata["account_sid"] == "AC1"

    def test_media(self, serializer):
        events = serializer.deserialize(json.dumps(twilio_media(b"\xff\x7f\x00")))
        assert len(events) == 1
        frame = events[0]
        assert isinstance(frame, AudioFrame)
        assert frame.codec == Codec.MULAW
        assert frame.sample_rate == 8000
        assert frame.data == b"\xff\x7f\x00"

    def test_outbound_track_is_ignored(self, serializer):
        assert serializer.deserialize(json.dumps(twilio_media(b"\x01", track="outbound"))) == []

    def test_media_without_track_is_accepted(self, serializer):
        msg = {"event": "media", "media": {"payload": base64.b64encode(b"\x01").decode()}}
        assert len(serializer.deserialize(msg)) == 1

    def test_empty_payload_is_ignored(self, serializer):
        assert serializer.deserialize({"event": "media", "media": {"payload": ""}}) == []

    def test_invalid_payload_raises(self, serializer):
        msg = {"event": "media", "media": {"payload": "!!not base64!!"}}
        with pytest.raises(ValueError):
            serializer.deserialize(msg)

    def test_stop(self, serializer):
        events = serializer.deserialize(json.dumps(twilio_stop("CA9")))
        assert len(events) == 1
        assert isinstance(events[0], CallEnded)
        assert events[0].call_id == "CA9"

    def test_unknown_event_is_custom(self, serializer):
        events = serializer.deserialize(json.dumps({"event": "mark", "mark": {"name": "m1"}}))
        assert isinstance(events[0], CustomEvent)
        assert events[0].custom_type == "twilio.mark"

    def test_malformed_json_raises(self, serializer):
        with pytest.raises(ValueError):
            serializer.deserialize("{not json")

    def test_non_object_raises(self, serializer):
        with pytest.raises(ValueError):
            serializer.deserialize("[1, 2]")

    def test_bytes_frame(self, serializer):
        raw = json.dumps(twilio_stop()).encode()
        assert isinstance(serializer.deserialize(raw)[0], CallEnded)

    def test_media_message(self, serializer):
        msg = json.loads(serializer.media_message("MZ1", b"\x01\x02"))
        assert msg == {
            "event": "media",
            "streamSid": "MZ1",
            "media": {"payload": base64.b64encode(b"\x01\x02").decode()},
        }


# ==========================================================================
# Realtime Serializer Tests
# ==========================================================================


class TestRealtimeSerializer:

    @pytest.fixture
    def serializer(self):
        return RealtimeSerializer()

    def test_session_update(self):
        msg = json.loads(RealtimeSerializer.session_update(
            voice="verse",
            instructions="Be brief.",
            input_sample_rate=24000,
            output_sample_rate=24000,
            server_vad=False,
        ))
        assert msg["type"] == "session.update"
        session = msg["session"]
        assert session["voice"] == "verse"
        assert session["instructions"] == "Be brief."
        assert session["input_audio_format"] == {"type": "pcm16", "sample_rate_hz": 24000}
        assert session["output_audio_format"] == {"type": "pcm16", "sample_rate_hz": 24000}
        assert session["turn_detection"] is None

    def test_session_update_server_vad(self):
        msg = json.loads(RealtimeSerializer.session_update(
            voice="verse", instructions="", input_sample_rate=24000,
            output_sample_rate=24000, server_vad=True,
        ))
        assert msg["session"]["turn_detection"] == {"type": "server_vad"}

    def test_response_create(self):
        assert json.loads(RealtimeSerializer.response_create()) == {"type": "response.create"}
        msg = json.loads(RealtimeSerializer.response_create("Say hi"))
        assert msg == {"type": "response.create", "response": {"instructions": "Say hi"}}

    def test_input_audio_messages(self):
        append = json.loads(RealtimeSerializer.input_audio_append(b"\x01\x00"))
        assert append["type"] == "input_audio_buffer.append"
        assert base64.b64decode(append["audio"]) == b"\x01\x00"
        commit = json.loads(RealtimeSerializer.input_audio_commit())
        assert commit == {"type": "input_audio_buffer.commit"}

    @pytest.mark.parametrize("msg_type", ["session.created", "session.updated"])
    def test_session_ready(self, serializer, msg_type):
        event = serializer.deserialize(json.dumps({"type": msg_type}))
        assert isinstance(event, SessionReady)
        assert event.source == msg_type

    def test_turn_events(self, serializer):
        started = serializer.deserialize({"type": "response.created", "response": {"id": "r1"}})
        assert isinstance(started, TurnStarted)
        assert started.response_id == "r1"
        ended = serializer.deserialize(
            {"type": "response.done", "response": {"id": "r1", "status": "completed"}}
        )
        assert isinstance(ended, TurnEnded)
        assert ended.status == "completed"

    @pytest.mark.parametrize("msg_type", sorted(TEXT_DELTA_TYPES))
    def test_text_deltas(self, serializer, msg_type):
        event = serializer.deserialize({"type": msg_type, "delta": "hello"})
        assert isinstance(event, TextDelta)
        assert event.text == "hello"

    @pytest.mark.parametrize("msg_type", sorted(AUDIO_DELTA_TYPES))
    def test_audio_deltas(self, serializer, msg_type):
        event = serializer.deserialize(agent_audio(b"\x01\x02", msg_type))
        assert isinstance(event, AudioDelta)
        assert event.data == b"\x01\x02"

    def test_audio_in_audio_field(self, serializer):
        msg = {"type": "output_audio.delta", "audio": base64.b64encode(b"\x05\x06").decode()}
        assert serializer.deserialize(msg).data == b"\x05\x06"

    def test_error(self, serializer):
        event = serializer.deserialize({
            "type": "error",
            "error": {"type": "invalid_request_error", "code": "bad_audio", "message": "nope"},
        })
        assert isinstance(event, AgentError)
        assert event.code == "bad_audio"
        assert event.message == "nope"

    def test_ignored_types(self, serializer):
        assert serializer.deserialize({"type": "rate_limits.updated"}) is None
        assert serializer.deserialize({"type": "response.output_text.delta", "delta": ""}) is None

    def test_malformed_raises(self, serializer):
        with pytest.raises(ValueError):
            serializer.deserialize("not json")
        with pytest.raises(ValueError):
            serializer.deserialize({"type": "output_audio.delta", "delta": "%%%"})
