"""Tests for the wire codec."""
import json

import pytest

from duetcode.errors import DecodeError, UnknownMessageType
from duetcode.messages import (
    INBOUND_TYPES,
    AiCodeReply,
    ChatQueryRequest,
    CollabUpdateBroadcast,
    CollabUpdateRequest,
    ErrorReply,
    FeedbackRequest,
    JoinCollabRequest,
    LanguageOptions,
    LanguageOptionsReply,
    PromptRequest,
    SnippetRequest,
    TimeMachineRequest,
    decode_message,
    encode_message,
)


class TestDecode:
    """Tests for inbound decoding."""

    def test_decodes_prompt(self):
        message = decode_message('{"type": "prompt", "text": "hello", "requestTitle": "Greeting"}')

        assert isinstance(message, PromptRequest)
        assert message.text == "hello"
        assert message.request_title == "Greeting"
        assert message.title == "Greeting"
        assert message.routing_text() == "hello"

    def test_decodes_camel_case_session_fields(self):
        message = decode_message(json.dumps({"type": "collabUpdate", "sessionId": "abc123xyz", "code": "x"}))

        assert isinstance(message, CollabUpdateRequest)
        assert message.session_id == "abc123xyz"
        assert message.title == "Collab Update"

    def test_decodes_bytes(self):
        message = decode_message(b'{"type": "joinCollab", "sessionId": "s1"}')

        assert isinstance(message, JoinCollabRequest)

    def test_decodes_type_only_message(self):
        assert isinstance(decode_message('{"type": "snippetRequest"}'), SnippetRequest)

    def test_decodes_time_machine_history(self):
        message = decode_message(
            json.dumps(
                {
                    "type": "timeMachine",
                    "history": [
                        {"title": "first", "code": "a", "timestamp": "10:00"},
                        {"title": "second", "code": "b", "error": "boom", "timestamp": 1700000000},
                    ],
                }
            )
        )

        assert isinstance(message, TimeMachineRequest)
        assert [entry.code for entry in message.history] == ["a", "b"]
        assert message.history[1].error == "boom"
        assert message.routing_text() == "b"

    def test_ignores_unknown_fields(self):
        message = decode_message('{"type": "chatQuery", "query": "why?", "extra": 1}')

        assert isinstance(message, ChatQueryRequest)
        assert message.title == "why?"

    def test_invalid_json_raises_decode_error(self):
        with pytest.raises(DecodeError):
            decode_message("{not json")

    def test_non_object_raises_decode_error(self):
        with pytest.raises(DecodeError):
            decode_message('["prompt"]')

    def test_missing_type_raises_decode_error(self):
        with pytest.raises(DecodeError):
            decode_message('{"text": "hello"}')

    def test_unknown_type_raises(self):
        with pytest.raises(UnknownMessageType) as excinfo:
            decode_message('{"type": "teleport"}')

        assert excinfo.value.request_title == "teleport"
        assert excinfo.value.message == "Unknown message type"

    def test_missing_required_field_raises_decode_error(self):
        with pytest.raises(DecodeError) as excinfo:
            decode_message('{"type": "changeLanguage", "code": "x", "requestTitle": "Translate"}')

        assert "language" in excinfo.value.message
        assert excinfo.value.request_title == "Translate"

    def test_invalid_feedback_value_raises_decode_error(self):
        with pytest.raises(DecodeError):
            decode_message('{"type": "feedback", "query": "q", "value": "meh"}')

    def test_feedback_decoding(self):
        message = decode_message('{"type": "feedback", "query": "q1", "value": "bad"}')

        assert isinstance(message, FeedbackRequest)
        assert message.value == "bad"

    def test_every_inbound_type_has_a_model(self):
        assert set(INBOUND_TYPES) == {
            "prompt",
            "codeUpdate",
            "aiHelp",
            "chatQuery",
            "feedback",
            "snippetRequest",
            "changeLanguage",
            "duetCode",
            "timeMachine",
            "startCollab",
            "joinCollab",
            "collabUpdate",
            "screenCapture",
            "modelUpdate",
        }


class TestEncode:
    """Tests for outbound encoding."""

    def test_uses_wire_names_and_omits_unset_optionals(self):
        payload = json.loads(encode_message(AiCodeReply(code="x = 1", summary_title="Assign")))

        assert payload == {"type": "aiCode", "code": "x = 1", "summaryTitle": "Assign"}

    def test_collab_broadcast_marks_not_from_self(self):
        payload = json.loads(encode_message(CollabUpdateBroadcast(session_id="abc", code="// updated")))

        assert payload == {"type": "collabUpdate", "sessionId": "abc", "code": "// updated", "fromSelf": False}

    def test_error_carries_request_title(self):
        payload = json.loads(encode_message(ErrorReply(message="nope", request_title="Join Collab")))

        assert payload == {"type": "error", "message": "nope", "requestTitle": "Join Collab"}

    def test_language_options_nesting(self):
        reply = LanguageOptionsReply(options=LanguageOptions(languages=["Go", "Rust"]))

        assert json.loads(encode_message(reply)) == {
            "type": "languageOptions",
            "options": {"languages": ["Go", "Rust"]},
        }

    def test_encoding_is_single_line(self):
        assert "\n" not in encode_message(AiCodeReply(code="a\nb", summary_title="t"))
