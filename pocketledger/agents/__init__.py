"""AI Agents package."""

from pocketledger.agents.ai_agents import (
    AssistantAgent,
    AssistantUnavailableError,
    ChatAgent,
    ChatError,
    build_gemini_request,
)
from pocketledger.agents.assistants import (
    ASSISTANTS,
    Assistant,
    build_context_prompt,
    get_assistant,
)

__all__ = [
    "ASSISTANTS",
    "Assistant",
    "AssistantAgent",
    "AssistantUnavailableError",
    "ChatAgent",
    "ChatError",
    "build_context_prompt",
    "build_gemini_request",
    "get_assistant",
]
