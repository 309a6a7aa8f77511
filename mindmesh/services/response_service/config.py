"""Response Service configuration: prompts, reply templates and guardrails."""
import os
from dataclasses import dataclass
from typing import Tuple


RESPONSE_SYSTEM_PROMPT = """You are an empathetic mental health support assistant. Your role is to:

1. Listen actively and validate the user's feelings
2. Provide supportive, non-judgmental responses
3. Offer helpful suggestions based on their emotional state
4. Be warm, understanding, and encouraging

Guidelines:
- NEVER diagnose or provide medical advice
- NEVER encourage harmful behaviors
- Always encourage professional help for serious concerns
- Use a warm, conversational tone
- Keep responses concise (2-4 sentences)"""


CRISIS_RESOURCES = (
    "Crisis resources are available 24/7:\n"
    "• Suicide & Crisis Lifeline: call or text 988\n"
    "• Crisis Text Line: text HOME to 741741\n"
    "• Emergency services: call 911 if you are in immediate danger"
)

# The safety flag is recorded; therapists work from the flag queue
CRISIS_REPLY = (
    "I notice you might be going through something very difficult. "
    "I've flagged our conversation so a therapist on our team can follow up "
    "with you. Please reach out now if you need immediate support. "
    + CRISIS_RESOURCES
)

# No flag could be recorded, so no follow-up is promised
CRISIS_REPLY_UNESCALATED = (
    "I notice you might be going through something very difficult, and "
    "your safety matters. Please reach out to someone right now. "
    + CRISIS_RESOURCES
)

THERAPY_REPLY = (
    "I can see you're dealing with some heavy emotions right now. A therapy "
    "session might really help you work through these feelings. Would you "
    "like me to help you book a session with one of our therapists?"
)

JOURNAL_REPLY_TEMPLATE = (
    "It sounds like you have a lot on your mind. Writing about your feelings "
    "might help you process them. Here's a prompt to get started: \"{prompt}\""
)

HABIT_REPLY_TEMPLATE = (
    "To help manage these feelings, I suggest starting a habit: {name}. "
    "{description}. Would you like me to create this habit for you?"
)

DEFAULT_REPLY = (
    "Thank you for sharing. I'm here to listen. Whether you want to journal, "
    "work on a habit, or talk to a therapist, I'm here to support you."
)

# Used when the pipeline itself hits an unexpected error
GENERIC_SUPPORT_REPLY = (
    "I'm here to support you. If you're in crisis, please reach out to "
    "emergency services or a crisis hotline."
)


HARMFUL_PATTERNS: Tuple[str, ...] = (
    "kill yourself",
    "end your life",
    "you should die",
    "harm yourself",
    "hurt yourself",
    "commit suicide",
)

MEDICAL_ADVICE_PATTERNS: Tuple[str, ...] = (
    "i diagnose",
    "you have depression",
    "you have anxiety disorder",
    "you have bipolar",
    "take this medication",
    "stop taking your medication",
    "increase your dose",
)


@dataclass(frozen=True)
class ResponseConfig:
    """Generative reply settings."""
    timeout_seconds: float = 5.0
    max_tokens: int = 512
    temperature: float = 0.7
    bypass_llm_on_crisis: bool = True
    max_memories_in_prompt: int = 3
    max_reply_chars: int = 2000

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    @classmethod
    def from_env(cls) -> "ResponseConfig":
        """Create config from environment variables.

        Environment variables:
            RESPONSE_TIMEOUT_SECONDS: Model call timeout (default 5.0)
            RESPONSE_BYPASS_LLM_ON_CRISIS: "false" lets the model answer crises
        """
        return cls(
            timeout_seconds=float(os.getenv("RESPONSE_TIMEOUT_SECONDS", cls.timeout_seconds)),
            bypass_llm_on_crisis=os.getenv("RESPONSE_BYPASS_LLM_ON_CRISIS", "true").lower() == "true",
        )
