"""
Generation collaborators: the bridge between the router and a
generative-language API.

The router only depends on the `CodeGenerator` protocol. A collaborator never
raises for provider failures; it returns text beginning with `ERROR_SENTINEL`
instead, which the router translates into an `error` reply. Two
implementations ship with the server:

- `GeminiGenerator` relays prompts to the Gemini `generateContent` endpoint
  over `httpx` and extracts the code block from the reply.
- `MockGenerator` returns deterministic canned text so the server can run
  without network access or an API key.
"""
from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Union

import httpx

from . import prompts
from .feedback import FeedbackStore

if TYPE_CHECKING:
    from .config import DuetSettings

LOGGER = logging.getLogger(__name__)

ERROR_SENTINEL = "// Error:"
DEFAULT_LANGUAGES = (
    "C",
    "C++",
    "Java",
    "JavaScript",
    "Python",
    "Ruby",
    "Go",
    "Rust",
    "PHP",
    "TypeScript",
)
LANGUAGE_IDENTIFIERS = frozenset(
    {"html", "javascript", "css", "python", "java", "cpp", "c", "ruby", "go", "rust", "php", "typescript"}
)
_FENCED_BLOCK = re.compile(r"```[\s\S]*?```")


class GenerationMode(str, Enum):
    """Prompt families understood by the generation collaborator."""

    GENERATE = "generate"
    COMMENT = "comment"
    FIX_OR_EXTEND = "fix_or_extend"
    CHAT = "chat"
    LANGUAGE_OPTIONS = "languageOptions"
    AUTO_CORRECT = "autoCorrect"
    SCREEN_CAPTURE = "screenCapture"


_TEMPLATES: Dict[GenerationMode, str] = {
    GenerationMode.GENERATE: prompts.GENERATE_PROMPT,
    GenerationMode.COMMENT: prompts.COMMENT_PROMPT,
    GenerationMode.FIX_OR_EXTEND: prompts.FIX_OR_EXTEND_PROMPT,
    GenerationMode.CHAT: prompts.CHAT_PROMPT,
    GenerationMode.LANGUAGE_OPTIONS: prompts.LANGUAGE_OPTIONS_PROMPT,
    GenerationMode.AUTO_CORRECT: prompts.AUTO_CORRECT_PROMPT,
    GenerationMode.SCREEN_CAPTURE: prompts.SCREEN_CAPTURE_PROMPT,
}


class CodeGenerator(Protocol):
    """What the router needs from a generation backend."""

    async def generate(self, input: str, mode: Union[GenerationMode, str], model: str) -> str: ...

    def record_feedback(self, query: str, value: str) -> None: ...


def is_error(result: Any) -> bool:
    return isinstance(result, str) and result.startswith(ERROR_SENTINEL)


def error_text(reason: str) -> str:
    return f"{ERROR_SENTINEL} {reason}"


def extract_code(text: str) -> str:
    """
    Returns the contents of the first fenced block in `text`.

    A leading language identifier line (```python) is dropped. Text without a
    fenced block is returned trimmed.
    """
    match = _FENCED_BLOCK.search(text)
    if not match:
        return text.strip()
    code = match.group(0).replace("```", "").strip()
    lines = code.split("\n")
    if len(lines) > 1 and lines[0].strip().lower() in LANGUAGE_IDENTIFIERS:
        code = "\n".join(lines[1:]).strip()
    return code


def build_prompt(input: str, mode: GenerationMode, feedback: Optional[str] = None) -> str:
    template = _TEMPLATES[mode]
    if mode is GenerationMode.CHAT:
        return template.format(input=input, feedback=json.dumps(feedback or "No feedback yet"))
    return template.format(input=input)


def _coerce_mode(mode: Union[GenerationMode, str]) -> Optional[GenerationMode]:
    try:
        return GenerationMode(mode)
    except ValueError:
        return None


class GeminiGenerator:
    """
    Relays prompts to the Gemini `generateContent` REST endpoint.

    Attributes:
        base_url: Endpoint prefix up to and including `/models`.
        feedback: Labels recorded by users, quoted back into chat prompts.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout: Optional[float] = None,
        feedback: Optional[FeedbackStore] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.feedback = feedback or FeedbackStore()
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def record_feedback(self, query: str, value: str) -> None:
        self.feedback.record(query, value)

    async def generate(self, input: str, mode: Union[GenerationMode, str], model: str) -> str:
        if not input or not isinstance(input, str):
            return error_text("Invalid input provided.")
        resolved = _coerce_mode(mode)
        if resolved is None:
            return error_text("Unknown mode specified.")

        prompt = build_prompt(input, resolved, self.feedback.get(input))
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        url = f"{self.base_url}/{model}:generateContent"
        LOGGER.debug("Sending request to Gemini model=%s mode=%s", model, resolved.value)

        try:
            response = await self._client.post(url, params={"key": self._api_key}, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            LOGGER.warning("Gemini API error model=%s status=%s", model, exc.response.status_code)
            return error_text(f"Request failed with status code {exc.response.status_code}")
        except httpx.RequestError as exc:
            LOGGER.warning("Gemini request failed model=%s: %s", model, exc)
            return error_text(str(exc) or "Failed to process request.")
        except ValueError:
            return error_text("Invalid API response format.")

        text = self._candidate_text(data)
        if text is None:
            LOGGER.warning("Invalid candidates structure from model=%s", model)
            return error_text("No valid candidates in API response.")

        if resolved is GenerationMode.LANGUAGE_OPTIONS:
            match = _FENCED_BLOCK.search(text)
            block = match.group(0).replace("```", "").strip() if match else text.strip()
            if block[:4].lower() == "json":
                block = block[4:].lstrip()
            return block
        return extract_code(text)

    @staticmethod
    def _candidate_text(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return None
        try:
            text = candidates[0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None
        return text if isinstance(text, str) else None


class MockGenerator:
    """Deterministic stand-in used when no API key is configured."""

    def __init__(self, feedback: Optional[FeedbackStore] = None) -> None:
        self.feedback = feedback or FeedbackStore()

    def record_feedback(self, query: str, value: str) -> None:
        self.feedback.record(query, value)

    async def generate(self, input: str, mode: Union[GenerationMode, str], model: str) -> str:
        if not input or not isinstance(input, str):
            return error_text("Invalid input provided.")
        resolved = _coerce_mode(mode)
        if resolved is None:
            return error_text("Unknown mode specified.")
        headline = input.strip().splitlines()[0][:60] if input.strip() else ""
        if resolved is GenerationMode.LANGUAGE_OPTIONS:
            return json.dumps({"languages": list(DEFAULT_LANGUAGES)})
        if resolved is GenerationMode.CHAT:
            return f"[mock:{model}] {headline}"
        return f"// [mock:{model}:{resolved.value}] {headline}\n{input.strip()}"


def build_generator(settings: "DuetSettings") -> CodeGenerator:
    """Selects the Gemini client, or the mock when mock mode is on or no key is set."""
    feedback = FeedbackStore(settings.feedback_capacity)
    if settings.mock_mode or not settings.gemini_api_key:
        LOGGER.info("Using mock generation backend")
        return MockGenerator(feedback)
    return GeminiGenerator(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_api_base_url,
        timeout=settings.gemini_timeout,
        feedback=feedback,
    )


__all__ = [
    "CodeGenerator",
    "DEFAULT_LANGUAGES",
    "ERROR_SENTINEL",
    "GeminiGenerator",
    "GenerationMode",
    "MockGenerator",
    "build_generator",
    "build_prompt",
    "error_text",
    "extract_code",
    "is_error",
]
