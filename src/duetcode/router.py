"""
This module implements the request router, the per-message state machine of the
duetcode server.

For every inbound frame the router:

1. decodes it into a typed message (malformed frames get an `error` reply);
2. hashes it into a routing state and, when a previous `(state, action)` pair
   is remembered, charges that pair with the reward carried by this message;
3. asks the action policy for an action, which the feedback-tunable handlers
   (`prompt`, `aiHelp`) turn into a generation mode;
4. runs the handler for the message type, which may call the generation
   collaborator, touch the session store, and reply or broadcast;
5. remembers the current `(state, action)` pair for the next reward.

Handlers suspend only while awaiting the generation collaborator, so other
messages keep flowing while a slow generation is outstanding. Any failure in a
handler becomes an `error` reply to the sender; the connection stays open.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .config import DuetSettings
from .connections import Connection, broadcast
from .errors import DuetError, GenerationFailure, TransportError
from .generation import DEFAULT_LANGUAGES, CodeGenerator, GenerationMode, error_text, is_error
from .messages import (
    INBOUND_TYPES,
    AiCodeReply,
    AiHelpRequest,
    BetterResponseReply,
    ChangeLanguageRequest,
    ChatQueryRequest,
    ChatReply,
    CodeUpdateRequest,
    CollabUpdateBroadcast,
    CollabUpdateRequest,
    DuetCodeRequest,
    ErrorReply,
    FeedbackAckReply,
    FeedbackRequest,
    InboundMessage,
    JoinCollabRequest,
    LanguageOptions,
    LanguageOptionsReply,
    ModelUpdatedReply,
    ModelUpdateRequest,
    OutboundMessage,
    PromptRequest,
    ScreenCaptureReply,
    ScreenCaptureRequest,
    SessionCreatedReply,
    SessionJoinedReply,
    SnippetReply,
    SnippetRequest,
    StartCollabRequest,
    SuggestionReply,
    TimeMachineRequest,
    decode_message,
)
from .policy import ActionPolicy, PolicyMemory, reward_for, state_hash
from .prompts import SCREEN_CAPTURE_DEFAULT_TEXT, SNIPPET_REQUEST_TEXT
from .sessions import SessionStore

LOGGER = logging.getLogger(__name__)

FEEDBACK_THANKS = "Thanks for your feedback!"
FEEDBACK_NO_IMPROVEMENT = "Thanks for your feedback! No better response was found this time."
SNIPPET_SEPARATOR = "\n\n// Explanation:"
SNIPPET_DEFAULT_EXPLANATION = "A useful snippet for beginners!"
NO_PREVIOUS_CODE = "// No previous code"


def summarize_title(prompt: str, code: str) -> str:
    """Short timeline title for a generated result."""
    lowered = prompt.lower()
    if "login page" in lowered and ("html" in code.lower() or "css" in code.lower()):
        return "Login Page"
    if "react website" in lowered:
        return "React Website"
    if "fibonacci" in lowered:
        return "Fibonacci Sequence"
    return prompt[:20] + "..." if len(prompt) > 20 else prompt


def parse_language_options(text: str) -> List[str]:
    """Reads `{"languages": [...]}` from generator output, falling back to defaults."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        LOGGER.warning("Unparseable language options; using defaults")
        return list(DEFAULT_LANGUAGES)
    languages = data.get("languages") if isinstance(data, dict) else None
    if not isinstance(languages, list) or not languages or not all(isinstance(x, str) for x in languages):
        return list(DEFAULT_LANGUAGES)
    return languages


@dataclass(frozen=True)
class RoutingContext:
    """
    Per-message routing facts handed to a handler.

    Attributes:
        connection: The sender.
        state: Routing state of this message.
        action: Action index chosen by the policy for this message.
        previous: The `(state, action)` pair this message's reward was charged to.
    """

    connection: Connection
    state: int
    action: int
    previous: Optional[Tuple[int, int]]


Handler = Callable[[InboundMessage, RoutingContext], Awaitable[None]]


class RequestRouter:
    """
    Dispatches decoded messages to their handlers.

    Attributes:
        sessions: Registry of collaboration sessions.
        policy: Adaptive dispatcher consulted for tunable message types.
        generator: Generation collaborator.
        current_model: Model name passed to every generation call. It is
                       process-wide; `modelUpdate` from any client changes it.
    """

    def __init__(
        self,
        *,
        sessions: SessionStore,
        policy: ActionPolicy,
        generator: CodeGenerator,
        settings: Optional[DuetSettings] = None,
    ) -> None:
        self.settings = settings or DuetSettings()
        self.sessions = sessions
        self.policy = policy
        self.generator = generator
        self.current_model = self.settings.default_model
        self._global_memory = PolicyMemory()
        self._connection_memory: Dict[str, PolicyMemory] = {}
        self._handlers: Dict[str, Handler] = {
            "prompt": self._handle_prompt,
            "codeUpdate": self._handle_code_update,
            "aiHelp": self._handle_ai_help,
            "chatQuery": self._handle_chat_query,
            "feedback": self._handle_feedback,
            "snippetRequest": self._handle_snippet_request,
            "changeLanguage": self._handle_change_language,
            "duetCode": self._handle_duet_code,
            "timeMachine": self._handle_time_machine,
            "startCollab": self._handle_start_collab,
            "joinCollab": self._handle_join_collab,
            "collabUpdate": self._handle_collab_update,
            "screenCapture": self._handle_screen_capture,
            "modelUpdate": self._handle_model_update,
        }
        missing = set(INBOUND_TYPES) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler registered for: {sorted(missing)}")

    # ------------------------------------------------------------------
    # Policy memory
    # ------------------------------------------------------------------

    def memory_for(self, connection: Connection) -> PolicyMemory:
        if self.settings.policy_memory_scope == "connection":
            if not connection.is_open:
                # close already ran forget(); keep the map free of dead ids
                return PolicyMemory()
            return self._connection_memory.setdefault(connection.id, PolicyMemory())
        return self._global_memory

    def forget(self, connection: Connection) -> None:
        self._connection_memory.pop(connection.id, None)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_frame(self, connection: Connection, raw: str | bytes) -> None:
        """Decodes one inbound frame and routes it."""
        try:
            message = decode_message(raw)
        except DuetError as exc:
            LOGGER.warning("Rejected frame from %s: %s", connection.id, exc.message)
            await self._reply(connection, ErrorReply(message=exc.message, request_title=exc.request_title or "Unknown"))
            return
        await self.dispatch(connection, message)

    async def dispatch(self, connection: Connection, message: InboundMessage) -> None:
        memory = self.memory_for(connection)
        current_state = state_hash(message.type, message.routing_text(), self.policy.num_states)

        previous = memory.recall()
        if previous is not None:
            last_state, last_action = previous
            reward = reward_for(message.type, getattr(message, "value", None))
            self.policy.update(last_state, last_action, reward, current_state)

        chosen = self.policy.select_action(current_state)
        context = RoutingContext(connection=connection, state=current_state, action=chosen, previous=previous)
        LOGGER.debug(
            "Routing %s from %s state=%d action=%s",
            message.type,
            connection.id,
            current_state,
            self.policy.actions[chosen].value,
        )

        try:
            await self._handlers[message.type](message, context)
        except DuetError as exc:
            LOGGER.info("%s from %s failed: %s", message.type, connection.id, exc.message)
            await self._reply(
                connection,
                ErrorReply(message=exc.message, request_title=exc.request_title or message.title),
            )
        except Exception as exc:
            LOGGER.exception("Unhandled error while processing %s", message.type)
            await self._reply(
                connection,
                ErrorReply(message=f"// Server error: {exc}", request_title=message.title or "Unknown"),
            )
        finally:
            memory.remember(current_state, chosen)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _reply(self, connection: Connection, message: OutboundMessage) -> None:
        try:
            await connection.send(message)
        except TransportError as exc:
            LOGGER.warning("Dropping %s reply: %s", message.type, exc.message)

    async def _generate(self, input: str, mode: GenerationMode, *, title: Optional[str]) -> str:
        model = self.current_model
        try:
            result = await self.generator.generate(input, mode, model)
        except Exception as exc:
            raise GenerationFailure(error_text(str(exc) or "Failed to process request."), request_title=title) from exc
        if not isinstance(result, str):
            raise GenerationFailure(error_text("Invalid API response format."), request_title=title)
        if is_error(result):
            raise GenerationFailure(result, request_title=title)
        return result

    def _mode_for(self, context: RoutingContext) -> GenerationMode:
        return self.policy.actions[context.action].mode

    def _bind(self, connection: Connection, session_id: str) -> None:
        """Tags the connection with its session; a connection belongs to at most one."""
        previous = connection.session_id
        if previous and previous != session_id:
            self.sessions.leave(previous, connection)
        connection.session_id = session_id
        if not connection.is_open:
            # closed while this frame was in flight; its cleanup already ran
            self.sessions.leave(session_id, connection)

    # ------------------------------------------------------------------
    # Generation handlers
    # ------------------------------------------------------------------

    async def _handle_prompt(self, message: PromptRequest, context: RoutingContext) -> None:
        mode = self._mode_for(context)
        LOGGER.info("Processing prompt with model=%s mode=%s", self.current_model, mode.value)
        result = await self._generate(message.text, mode, title=message.request_title)
        title = summarize_title(message.request_title or message.text, result)
        await self._reply(context.connection, AiCodeReply(code=result, summary_title=title))

    async def _handle_ai_help(self, message: AiHelpRequest, context: RoutingContext) -> None:
        mode = self._mode_for(context)
        LOGGER.info("Processing aiHelp with model=%s mode=%s", self.current_model, mode.value)
        result = await self._generate(message.code, mode, title=message.request_title)
        title = summarize_title(message.request_title or "AI Help", result)
        await self._reply(context.connection, AiCodeReply(code=result, summary_title=title))

    async def _handle_code_update(self, message: CodeUpdateRequest, context: RoutingContext) -> None:
        connection = context.connection
        if message.request_comment:
            try:
                result = await self._generate(
                    message.code, GenerationMode.AUTO_CORRECT, title=message.request_title
                )
            except GenerationFailure as exc:
                await self._reply(connection, ErrorReply(message=exc.message, request_title=exc.request_title))
            else:
                await self._reply(connection, SuggestionReply(code=result, request_title=message.request_title))

        try:
            raw = await self._generate(message.code, GenerationMode.LANGUAGE_OPTIONS, title=message.request_title)
        except GenerationFailure as exc:
            LOGGER.warning("Language options unavailable: %s", exc.message)
            languages = list(DEFAULT_LANGUAGES)
        else:
            languages = parse_language_options(raw)
        await self._reply(connection, LanguageOptionsReply(options=LanguageOptions(languages=languages)))

    async def _handle_chat_query(self, message: ChatQueryRequest, context: RoutingContext) -> None:
        result = await self._generate(message.query, GenerationMode.CHAT, title=message.query)
        await self._reply(context.connection, ChatReply(message=result))

    async def _handle_snippet_request(self, message: SnippetRequest, context: RoutingContext) -> None:
        result = await self._generate(SNIPPET_REQUEST_TEXT, GenerationMode.GENERATE, title=message.title)
        code, _, explanation = result.partition(SNIPPET_SEPARATOR)
        await self._reply(
            context.connection,
            SnippetReply(code=code.strip(), explanation=explanation.strip() or SNIPPET_DEFAULT_EXPLANATION),
        )

    async def _handle_change_language(self, message: ChangeLanguageRequest, context: RoutingContext) -> None:
        prompt = f"Convert this code to {message.language}:\n{message.code}"
        result = await self._generate(prompt, GenerationMode.GENERATE, title=message.request_title)
        title = summarize_title(message.request_title or f"Convert to {message.language}", result)
        await self._reply(context.connection, AiCodeReply(code=result, summary_title=title))

    async def _handle_duet_code(self, message: DuetCodeRequest, context: RoutingContext) -> None:
        prompt = f"Rewrite this code in a {message.style} style:\n{message.code}"
        result = await self._generate(prompt, GenerationMode.GENERATE, title=message.request_title)
        title = summarize_title(message.request_title or f"{message.style} style", result)
        await self._reply(context.connection, AiCodeReply(code=result, summary_title=title))

    async def _handle_screen_capture(self, message: ScreenCaptureRequest, context: RoutingContext) -> None:
        result = await self._generate(
            message.image or SCREEN_CAPTURE_DEFAULT_TEXT, GenerationMode.SCREEN_CAPTURE, title=message.title
        )
        await self._reply(
            context.connection,
            ScreenCaptureReply(code=result, summary_title=summarize_title("Screen Capture", result)),
        )

    async def _handle_time_machine(self, message: TimeMachineRequest, context: RoutingContext) -> None:
        latest = message.history[-1].code if message.history else None
        if latest is None:
            latest = NO_PREVIOUS_CODE
        await self._reply(
            context.connection,
            AiCodeReply(code=latest, summary_title="Time Machine Restore"),
        )

    async def _handle_feedback(self, message: FeedbackRequest, context: RoutingContext) -> None:
        connection = context.connection
        try:
            self.generator.record_feedback(message.query, message.value)
        except Exception:
            LOGGER.warning("Recording feedback failed", exc_info=True)

        if message.value == "good":
            await self._reply(connection, FeedbackAckReply(message=FEEDBACK_THANKS))
            return

        for mode in self._retry_modes(context):
            try:
                result = await self._generate(message.query, mode, title="Feedback")
            except GenerationFailure as exc:
                LOGGER.info("Retry with mode=%s failed: %s", mode.value, exc.message)
                continue
            await self._reply(connection, BetterResponseReply(code=result, summary_title="Better Response"))
            return
        await self._reply(connection, FeedbackAckReply(message=FEEDBACK_NO_IMPROVEMENT))

    def _retry_modes(self, context: RoutingContext) -> Sequence[GenerationMode]:
        """Alternate modes for a disliked result, best valued first."""
        if context.previous is not None:
            state, judged = context.previous
            ranked = self.policy.ranked_actions(state, exclude=(judged,))
        else:
            ranked = self.policy.ranked_actions(context.state)
        limit = self.settings.feedback_retry_limit
        return [self.policy.actions[index].mode for index in ranked[:limit]]

    # ------------------------------------------------------------------
    # Session handlers
    # ------------------------------------------------------------------

    async def _handle_start_collab(self, message: StartCollabRequest, context: RoutingContext) -> None:
        connection = context.connection
        session_id = self.sessions.create(message.code, connection)
        self._bind(connection, session_id)
        await self._reply(connection, SessionCreatedReply(session_id=session_id))

    async def _handle_join_collab(self, message: JoinCollabRequest, context: RoutingContext) -> None:
        connection = context.connection
        code = self.sessions.join(message.session_id, connection)
        self._bind(connection, message.session_id)
        await self._reply(connection, SessionJoinedReply(session_id=message.session_id, code=code))

    async def _handle_collab_update(self, message: CollabUpdateRequest, context: RoutingContext) -> None:
        targets = self.sessions.update(message.session_id, context.connection, message.code)
        delivered = await broadcast(
            targets, CollabUpdateBroadcast(session_id=message.session_id, code=message.code)
        )
        LOGGER.debug("Broadcast collab update for %s to %d/%d", message.session_id, delivered, len(targets))

    async def _handle_model_update(self, message: ModelUpdateRequest, context: RoutingContext) -> None:
        self.current_model = message.model
        LOGGER.info("Model updated to %s", message.model)
        await self._reply(context.connection, ModelUpdatedReply(model=message.model))


__all__ = ["RequestRouter", "RoutingContext", "parse_language_options", "summarize_title"]
