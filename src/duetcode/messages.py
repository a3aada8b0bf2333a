"""
This module defines the wire contract spoken between a browser editor and the
duetcode server.

Every frame is a flat JSON object with a mandatory `type` discriminator. Inbound
frames are decoded into a closed, pydantic-validated union with one model per
message type, so the router can map each variant to exactly one handler.
Outbound frames are likewise modelled one per type and serialized with their
camelCase wire names, omitting optional fields that are unset.
"""
from __future__ import annotations

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import DecodeError, UnknownMessageType

DEFAULT_COLLAB_CODE = "// Collaborative coding started\n"


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class InboundMessage(_WireModel):
    """
    Common behavior of every client-to-server message.

    Subclasses declare `type` as a literal and override `routing_text` to
    expose the text or code that summarizes the request for the action policy.
    """

    type: str

    def routing_text(self) -> str:
        return ""

    @property
    def title(self) -> Optional[str]:
        """Title used to correlate an error reply with this request."""
        return getattr(self, "request_title", None)


class PromptRequest(InboundMessage):
    type: Literal["prompt"] = "prompt"
    text: str
    feature: Optional[str] = None
    request_title: Optional[str] = Field(default=None, alias="requestTitle")

    def routing_text(self) -> str:
        return self.text


class CodeUpdateRequest(InboundMessage):
    type: Literal["codeUpdate"] = "codeUpdate"
    code: str
    request_comment: Optional[Any] = Field(default=None, alias="requestComment")
    request_title: Optional[str] = Field(default=None, alias="requestTitle")

    def routing_text(self) -> str:
        return self.code


class AiHelpRequest(InboundMessage):
    type: Literal["aiHelp"] = "aiHelp"
    code: str
    request_title: Optional[str] = Field(default=None, alias="requestTitle")

    def routing_text(self) -> str:
        return self.code


class ChatQueryRequest(InboundMessage):
    type: Literal["chatQuery"] = "chatQuery"
    query: str

    def routing_text(self) -> str:
        return self.query

    @property
    def title(self) -> Optional[str]:
        return self.query


class FeedbackRequest(InboundMessage):
    type: Literal["feedback"] = "feedback"
    query: str
    value: Literal["good", "bad"]

    def routing_text(self) -> str:
        return self.query


class SnippetRequest(InboundMessage):
    type: Literal["snippetRequest"] = "snippetRequest"

    @property
    def title(self) -> Optional[str]:
        return "Snippet Request"


class ChangeLanguageRequest(InboundMessage):
    type: Literal["changeLanguage"] = "changeLanguage"
    language: str
    code: str
    request_title: Optional[str] = Field(default=None, alias="requestTitle")

    def routing_text(self) -> str:
        return self.code


class DuetCodeRequest(InboundMessage):
    type: Literal["duetCode"] = "duetCode"
    style: str
    code: str
    request_title: Optional[str] = Field(default=None, alias="requestTitle")

    def routing_text(self) -> str:
        return self.code


class HistoryEntry(_WireModel):
    """One snapshot of the client's timeline."""

    title: str = ""
    code: Optional[str] = None
    error: Optional[str] = None
    timestamp: Optional[Union[str, float]] = None


class TimeMachineRequest(InboundMessage):
    type: Literal["timeMachine"] = "timeMachine"
    history: List[HistoryEntry] = Field(default_factory=list)

    def routing_text(self) -> str:
        if self.history and self.history[-1].code:
            return self.history[-1].code
        return ""


class StartCollabRequest(InboundMessage):
    type: Literal["startCollab"] = "startCollab"
    code: Optional[str] = None

    def routing_text(self) -> str:
        return self.code or ""


class JoinCollabRequest(InboundMessage):
    type: Literal["joinCollab"] = "joinCollab"
    session_id: str = Field(alias="sessionId")

    def routing_text(self) -> str:
        return self.session_id

    @property
    def title(self) -> Optional[str]:
        return "Join Collab"


class CollabUpdateRequest(InboundMessage):
    type: Literal["collabUpdate"] = "collabUpdate"
    session_id: str = Field(alias="sessionId")
    code: str

    def routing_text(self) -> str:
        return self.code

    @property
    def title(self) -> Optional[str]:
        return "Collab Update"


class ScreenCaptureRequest(InboundMessage):
    type: Literal["screenCapture"] = "screenCapture"
    image: Optional[str] = None

    def routing_text(self) -> str:
        return self.image or ""

    @property
    def title(self) -> Optional[str]:
        return "Screen Capture"


class ModelUpdateRequest(InboundMessage):
    type: Literal["modelUpdate"] = "modelUpdate"
    model: str

    def routing_text(self) -> str:
        return self.model


InboundUnion = Annotated[
    Union[
        PromptRequest,
        CodeUpdateRequest,
        AiHelpRequest,
        ChatQueryRequest,
        FeedbackRequest,
        SnippetRequest,
        ChangeLanguageRequest,
        DuetCodeRequest,
        TimeMachineRequest,
        StartCollabRequest,
        JoinCollabRequest,
        CollabUpdateRequest,
        ScreenCaptureRequest,
        ModelUpdateRequest,
    ],
    Field(discriminator="type"),
]

_INBOUND_ADAPTER: TypeAdapter = TypeAdapter(InboundUnion)

INBOUND_TYPES: Dict[str, type] = {
    "prompt": PromptRequest,
    "codeUpdate": CodeUpdateRequest,
    "aiHelp": AiHelpRequest,
    "chatQuery": ChatQueryRequest,
    "feedback": FeedbackRequest,
    "snippetRequest": SnippetRequest,
    "changeLanguage": ChangeLanguageRequest,
    "duetCode": DuetCodeRequest,
    "timeMachine": TimeMachineRequest,
    "startCollab": StartCollabRequest,
    "joinCollab": JoinCollabRequest,
    "collabUpdate": CollabUpdateRequest,
    "screenCapture": ScreenCaptureRequest,
    "modelUpdate": ModelUpdateRequest,
}


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class OutboundMessage(_WireModel):
    type: str


class AiCodeReply(OutboundMessage):
    type: Literal["aiCode"] = "aiCode"
    code: str
    summary_title: str = Field(alias="summaryTitle")
    output: Optional[str] = None


class SuggestionReply(OutboundMessage):
    type: Literal["suggestion"] = "suggestion"
    code: str
    request_title: Optional[str] = Field(default=None, alias="requestTitle")


class ChatReply(OutboundMessage):
    type: Literal["chatResponse"] = "chatResponse"
    message: str


class SnippetReply(OutboundMessage):
    type: Literal["snippet"] = "snippet"
    code: str
    explanation: str


class LanguageOptions(_WireModel):
    languages: List[str]


class LanguageOptionsReply(OutboundMessage):
    type: Literal["languageOptions"] = "languageOptions"
    options: LanguageOptions


class FeedbackAckReply(OutboundMessage):
    type: Literal["feedbackAck"] = "feedbackAck"
    message: str


class BetterResponseReply(OutboundMessage):
    type: Literal["betterResponse"] = "betterResponse"
    code: str
    summary_title: str = Field(alias="summaryTitle")


class ScreenCaptureReply(OutboundMessage):
    type: Literal["screenCaptureResponse"] = "screenCaptureResponse"
    code: str
    summary_title: str = Field(alias="summaryTitle")
    output: Optional[str] = None


class SessionCreatedReply(OutboundMessage):
    type: Literal["sessionCreated"] = "sessionCreated"
    session_id: str = Field(alias="sessionId")


class SessionJoinedReply(OutboundMessage):
    type: Literal["sessionJoined"] = "sessionJoined"
    session_id: str = Field(alias="sessionId")
    code: str


class CollabUpdateBroadcast(OutboundMessage):
    """Buffer change relayed to the other participants of a session."""

    type: Literal["collabUpdate"] = "collabUpdate"
    session_id: str = Field(alias="sessionId")
    code: str
    from_self: Literal[False] = Field(default=False, alias="fromSelf")


class ModelUpdatedReply(OutboundMessage):
    type: Literal["modelUpdated"] = "modelUpdated"
    model: str


class ErrorReply(OutboundMessage):
    type: Literal["error"] = "error"
    message: str
    request_title: Optional[str] = Field(default=None, alias="requestTitle")


def decode_message(raw: Union[str, bytes]) -> InboundMessage:
    """
    Decodes a raw inbound frame into its typed message model.

    Args:
        raw: The frame as received from the transport.

    Returns:
        The concrete `InboundMessage` subclass for the frame's `type`.

    Raises:
        DecodeError: The frame is not a JSON object with a string `type`, or a
            known type fails field validation.
        UnknownMessageType: The `type` is not an inbound message type.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Invalid frame encoding: {exc.reason}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Invalid JSON payload: {exc.msg}") from exc

    if not isinstance(data, dict):
        raise DecodeError("Message must be a JSON object")
    message_type = data.get("type")
    if not isinstance(message_type, str) or not message_type:
        raise DecodeError("Message is missing a type")
    if message_type not in INBOUND_TYPES:
        raise UnknownMessageType(message_type)

    try:
        return _INBOUND_ADAPTER.validate_python(data)
    except ValidationError as exc:
        title = data.get("requestTitle")
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) or "?" for err in exc.errors())
        raise DecodeError(
            f"Invalid {message_type} message: {fields}",
            request_title=title if isinstance(title, str) else None,
        ) from exc


def encode_message(message: OutboundMessage) -> str:
    """Serializes an outbound message to compact wire JSON."""
    return message.model_dump_json(by_alias=True, exclude_none=True)


__all__ = [
    "DEFAULT_COLLAB_CODE",
    "INBOUND_TYPES",
    "InboundMessage",
    "PromptRequest",
    "CodeUpdateRequest",
    "AiHelpRequest",
    "ChatQueryRequest",
    "FeedbackRequest",
    "SnippetRequest",
    "ChangeLanguageRequest",
    "DuetCodeRequest",
    "HistoryEntry",
    "TimeMachineRequest",
    "StartCollabRequest",
    "JoinCollabRequest",
    "CollabUpdateRequest",
    "ScreenCaptureRequest",
    "ModelUpdateRequest",
    "OutboundMessage",
    "AiCodeReply",
    "SuggestionReply",
    "ChatReply",
    "SnippetReply",
    "LanguageOptions",
    "LanguageOptionsReply",
    "FeedbackAckReply",
    "BetterResponseReply",
    "ScreenCaptureReply",
    "SessionCreatedReply",
    "SessionJoinedReply",
    "CollabUpdateBroadcast",
    "ModelUpdatedReply",
    "ErrorReply",
    "decode_message",
    "encode_message",
]
