"""LLM Service for MindMesh.

Model clients shared by the language-understanding and
generative-response stages.
"""

from .base_llm import (
    BaseLLM,
    LLMConfig,
    LLMProvider,
    LLMResponse,
    HuggingFaceLLM,
    OpenAILLM,
    create_llm,
)

__all__ = [
    "BaseLLM",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "HuggingFaceLLM",
    "OpenAILLM",
    "create_llm",
]
