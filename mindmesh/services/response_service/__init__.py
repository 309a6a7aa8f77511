"""Response Service - generates the user-facing reply.

Model-backed generation with guardrails, falling back to a fixed decision
table keyed by the recommendation's highest-priority action.
"""
from .config import (
    CRISIS_REPLY,
    CRISIS_REPLY_UNESCALATED,
    DEFAULT_REPLY,
    GENERIC_SUPPORT_REPLY,
    RESPONSE_SYSTEM_PROMPT,
    ResponseConfig,
)
from .generator import (
    FALLBACK_REPLIES,
    GeneratedReply,
    ReplySource,
    ResponseGenerator,
    validate_reply,
)

__all__ = [
    "CRISIS_REPLY",
    "CRISIS_REPLY_UNESCALATED",
    "DEFAULT_REPLY",
    "GENERIC_SUPPORT_REPLY",
    "RESPONSE_SYSTEM_PROMPT",
    "ResponseConfig",
    "FALLBACK_REPLIES",
    "GeneratedReply",
    "ReplySource",
    "ResponseGenerator",
    "validate_reply",
]
