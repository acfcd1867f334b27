"""
Assistant Agent backed by Gemini

CRITICAL BOUNDARIES:
- CAN: Explain and advise using the figures in the context prompt
- CANNOT: Read or write storage (the chat flow loads context for it)
- CANNOT: Invent numbers the context doesn't contain

The LLM is an ADVISOR over the user's data, not an ORACLE.
"""

from typing import Any, Optional, Protocol

import google.generativeai as genai
import structlog

from pocketledger.agents.assistants import Assistant, build_context_prompt
from pocketledger.analytics.tools import FinancialContext
from pocketledger.config import GeminiSettings, get_settings


logger = structlog.get_logger(__name__)

# Gemini only knows "user" and "model" turns
_GEMINI_ROLES = {"user": "user", "assistant": "model"}


class ChatError(Exception):
    """Base class for chat request failures."""
    pass


class AssistantUnavailableError(ChatError):
    """The model could not produce a reply."""
    pass


class ChatAgent(Protocol):
    async def reply(
        self,
        assistant: Assistant,
        context: Optional[FinancialContext],
        messages: list[dict[str, str]],
    ) -> str: ...


def build_gemini_request(
    assistant: Assistant,
    context: Optional[FinancialContext],
    messages: list[dict[str, str]],
) -> tuple[str, list[dict[str, Any]]]:
    """
    Split a conversation into (system_instruction, contents).

    System messages from the client are appended to the instruction.
    """
    instruction_parts = [assistant.system_prompt, build_context_prompt(context)]
    contents = []
    for message in messages:
        role = message["role"]
        if role == "system":
            instruction_parts.append(message["content"])
            continue
        contents.append({"role": _GEMINI_ROLES[role], "parts": [message["content"]]})
    return "\n\n".join(instruction_parts), contents


class AssistantAgent:
    """
    Produces assistant replies with Gemini.

    The model is configured lazily so the app can start without an API key
    and report the missing configuration on the settings page.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings
        self._configured = False

    def _configure_genai(self) -> GeminiSettings:
        if self._settings is None:
            self._settings = get_settings().gemini
        if not self._configured:
            genai.configure(api_key=self._settings.api_key)
            self._configured = True
        return self._settings

    async def reply(
        self,
        assistant: Assistant,
        context: Optional[FinancialContext],
        messages: list[dict[str, str]],
    ) -> str:
        """
        Generate the assistant's next message.

        Raises:
            AssistantUnavailableError: If Gemini fails or returns nothing
        """
        try:
            settings = self._configure_genai()
            system_instruction, contents = build_gemini_request(assistant, context, messages)
            model = genai.GenerativeModel(
                model_name=settings.model_name,
                system_instruction=system_instruction,
                generation_config={
                    "temperature": settings.temperature,
                    "max_output_tokens": settings.max_tokens,
                },
            )
            response = await model.generate_content_async(contents)
            text = response.text.strip()
        except Exception as e:
            logger.error("assistant_reply_failed", assistant_id=assistant.id, error=str(e))
            raise AssistantUnavailableError(f"Assistant failed to reply: {e}") from e

        if not text:
            raise AssistantUnavailableError("Assistant returned an empty reply")
        return text
