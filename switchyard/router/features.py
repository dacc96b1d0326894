"""
Conversation feature extraction.

Pure helpers that walk an OpenAI-style message list once and derive the
cheap signals every later stage relies on. Malformed content is treated
as empty text; nothing in here raises on bad input.
"""

from dataclasses import asdict, dataclass
import math
import re
from typing import Any

_WHITESPACE = re.compile(r"\s+")

# Per-message clip applied when packing the recent-context window
CONTEXT_MESSAGE_CLIP = 320


def safe_text(value: Any) -> str:
    """
    Flatten message content into plain text.

    Strings pass through. Content-part lists contribute each part's
    ``text`` (or ``content``) joined by single spaces; non-text parts
    contribute nothing.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = []
        for item in value:
            if isinstance(item, str):
                text = item
            elif isinstance(item, dict):
                text = _text_field(item)
            else:
                text = ""
            if text:
                parts.append(text)
        return " ".join(parts)
    if isinstance(value, dict):
        return _text_field(value)
    return ""


def _text_field(item: dict) -> str:
    if isinstance(item.get("text"), str):
        return item["text"]
    if isinstance(item.get("content"), str):
        return item["content"]
    return ""


def normalize_whitespace(text: Any) -> str:
    return _WHITESPACE.sub(" ", str(text or "")).strip()


def extract_last_user_message(messages: list) -> str:
    """Text of the most recent user message that carries any text."""
    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role") == "user":
            text = safe_text(message.get("content")).strip()
            if text:
                return text
    return ""


def build_recent_context(messages: list, max_messages: int, max_chars: int) -> str:
    """
    Pack the tail of the conversation into a bounded text window.

    Each of the last ``max_messages`` messages becomes a ``role: text`` line
    clipped to a fixed length; the joined block is clipped to ``max_chars``.
    """
    lines = []
    for message in messages[-max_messages:] if max_messages > 0 else []:
        if isinstance(message, dict):
            role = message.get("role") or "unknown"
            content = message.get("content")
        else:
            role, content = "unknown", None
        text = normalize_whitespace(safe_text(content))[:CONTEXT_MESSAGE_CLIP]
        lines.append(f"{role}: {text}")
    return "\n".join(lines)[:max_chars]


@dataclass(frozen=True)
class ConversationFeatures:
    """
    Immutable summary of a conversation, computed once per request.

    Attributes:
        message_count: Total number of entries in the messages array
        user_messages: Number of user-role messages
        assistant_messages: Number of assistant-role messages
        system_messages: Number of system-role messages
        tool_messages: Number of tool-role messages
        has_multimodal: Any content part with a non-text type was seen
        has_tools_declared: The request body declares a non-empty tool list
        approx_chars: Sum of flattened text lengths
        approx_tokens: ceil(approx_chars / chars_per_token)
    """

    message_count: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    system_messages: int = 0
    tool_messages: int = 0
    has_multimodal: bool = False
    has_tools_declared: bool = False
    approx_chars: int = 0
    approx_tokens: int = 0

    @property
    def has_tools(self) -> bool:
        """Tools are declared or tool results are already in the conversation."""
        return self.has_tools_declared or self.tool_messages > 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def extract_conversation_features(
    messages: list, tools: Any = None, chars_per_token: int = 4
) -> ConversationFeatures:
    """
    Walk the messages once and compute ConversationFeatures.

    Args:
        messages: OpenAI-style message list
        tools: The request's ``tools`` field, if any
        chars_per_token: Divisor for the character-based token estimate

    Returns:
        ConversationFeatures for this conversation
    """
    counts = {"user": 0, "assistant": 0, "system": 0, "tool": 0}
    has_multimodal = False
    approx_chars = 0

    for message in messages:
        if not isinstance(message, dict):
            continue
        role = message.get("role")
        if role in counts:
            counts[role] += 1

        content = message.get("content")
        approx_chars += len(safe_text(content))

        if isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and part.get("type") and part.get("type") != "text":
                    has_multimodal = True

    divisor = max(1, chars_per_token)
    return ConversationFeatures(
        message_count=len(messages),
        user_messages=counts["user"],
        assistant_messages=counts["assistant"],
        system_messages=counts["system"],
        tool_messages=counts["tool"],
        has_multimodal=has_multimodal,
        has_tools_declared=isinstance(tools, list) and len(tools) > 0,
        approx_chars=approx_chars,
        approx_tokens=math.ceil(approx_chars / divisor),
    )
