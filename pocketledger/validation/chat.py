"""
Chat request validators.

These run before anything is sent to an assistant. They return a
ChatValidation instead of raising so the HTTP layer can turn the reason
straight into a 400 response.
"""

import re
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel


MAX_MESSAGE_LENGTH = 4000
MAX_CONVERSATION_MESSAGES = 50
VALID_ROLES = ("user", "assistant", "system")

# 21 or more of the same character in a row
_REPEATED_CHARS = re.compile(r"(.)\1{20,}")
_UPPERCASE = re.compile(r"[A-Z]")


class ChatValidation(BaseModel):
    valid: bool
    reason: Optional[str] = None


_OK = ChatValidation(valid=True)


def _reject(reason: str) -> ChatValidation:
    return ChatValidation(valid=False, reason=reason)


def validate_chat_message(content: Any) -> ChatValidation:
    """
    Check a single message body for abuse.

    Rejects missing or non-string content, over-long messages, blank
    messages, long runs of one character, and shouting (over 50 characters
    with more than 70% capitals).
    """
    if not content or not isinstance(content, str):
        return _reject("Message content is required and must be a string")

    if len(content) > MAX_MESSAGE_LENGTH:
        return _reject(f"Message is too long (maximum {MAX_MESSAGE_LENGTH} characters)")

    if not content.strip():
        return _reject("Message cannot be empty")

    if _REPEATED_CHARS.search(content):
        return _reject("Message contains excessive repeated characters")

    caps_ratio = len(_UPPERCASE.findall(content)) / len(content)
    if len(content) > 50 and caps_ratio > 0.7:
        return _reject("Message contains excessive capitalization")

    return _OK


def validate_chat_messages(messages: Any) -> ChatValidation:
    """
    Check a whole conversation as posted to the chat API.

    The first failing message decides the reason.
    """
    if not isinstance(messages, list):
        return _reject("Messages must be an array")

    if not messages:
        return _reject("At least one message is required")

    if len(messages) > MAX_CONVERSATION_MESSAGES:
        return _reject(
            f"Too many messages in conversation (maximum {MAX_CONVERSATION_MESSAGES})"
        )

    for message in messages:
        if not message or not isinstance(message, Mapping):
            return _reject("Each message must be an object")

        role = message.get("role")
        if not isinstance(role, str) or role not in VALID_ROLES:
            return _reject(
                "Each message must have a valid role (user, assistant, or system)"
            )

        if not message.get("content"):
            return _reject("Each message must have content")

        result = validate_chat_message(message["content"])
        if not result.valid:
            return result

    return _OK
