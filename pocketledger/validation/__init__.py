"""Validation package: chat request validators and receipt checks."""

from pocketledger.validation.chat import (
    ChatValidation,
    validate_chat_message,
    validate_chat_messages,
)
from pocketledger.validation.receipt import ReceiptValidator

__all__ = [
    "ChatValidation",
    "ReceiptValidator",
    "validate_chat_message",
    "validate_chat_messages",
]
