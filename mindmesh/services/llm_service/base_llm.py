"""Base LLM interface and implementations.

Provides the abstract model client used by the emotion analyzer (as the
language-understanding service) and by the response generator (as the
generative-response service), with OpenAI and HuggingFace endpoint backends.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class LLMProvider(Enum):
    """Supported LLM providers."""
    HUGGINGFACE = "huggingface"
    OPENAI = "openai"


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for LLM inference."""
    provider: LLMProvider
    model_name: str
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    max_tokens: int = 512
    temperature: float = 0.7
    top_p: float = 0.9
    timeout_seconds: int = 30

    @classmethod
    def from_env(cls) -> Optional["LLMConfig"]:
        """Create config from environment variables.

        Environment variables:
            LLM_PROVIDER: openai | huggingface (default openai)
            LLM_MODEL: Model name (default gpt-4o-mini)
            LLM_ENDPOINT: Inference endpoint (huggingface only)
            OPENAI_API_KEY / HF_API_KEY: Credentials
            LLM_MAX_TOKENS: Max tokens per reply (default 512)

        Returns:
            LLMConfig, or None when no credentials/endpoint are configured
            (the pipeline then runs on deterministic fallbacks only)
        """
        provider = LLMProvider(os.getenv("LLM_PROVIDER", LLMProvider.OPENAI.value))
        if provider == LLMProvider.OPENAI:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                return None
            endpoint = None
        else:
            endpoint = os.getenv("LLM_ENDPOINT")
            if not endpoint:
                return None
            api_key = os.getenv("HF_API_KEY")

        return cls(
            provider=provider,
            model_name=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            endpoint=endpoint,
            api_key=api_key,
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "512")),
        )


@dataclass
class LLMResponse:
    """Response from LLM inference."""
    text: str
    model: str
    provider: str
    tokens_used: Optional[int] = None
    latency_ms: Optional[float] = None
    metadata: Optional[Dict] = None


class BaseLLM(ABC):
    """Abstract base class for LLM implementations."""

    def __init__(self, config: LLMConfig):
        """Initialize LLM with configuration.

        Args:
            config: LLM configuration
        """
        self.config = config
        logger.info(
            "LLM_INITIALIZED",
            extra={
                "provider": config.provider.value,
                "model": config.model_name
            }
        )

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate response from LLM.

        Args:
            prompt: User prompt/question
            system_prompt: Optional system prompt for context
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse object

        Raises:
            TimeoutError: If inference exceeds timeout
            ValueError: If prompt is invalid
        """
        pass

    async def close(self) -> None:
        """Release any client resources."""
        return None

    def validate_prompt(self, prompt: str) -> bool:
        """Validate prompt before sending to LLM.

        Args:
            prompt: The prompt to validate

        Returns:
            True if valid, False otherwise
        """
        if not prompt or not prompt.strip():
            logger.warning("LLM_PROMPT_EMPTY")
            return False

        if len(prompt) > 10000:
            logger.warning(
                "LLM_PROMPT_TOO_LONG",
                extra={"length": len(prompt)}
            )
            return False

        return True


class HuggingFaceLLM(BaseLLM):
    """HuggingFace inference endpoint implementation."""

    def __init__(self, config: LLMConfig):
        """Initialize HuggingFace LLM.

        Args:
            config: LLM configuration with HuggingFace endpoint
        """
        super().__init__(config)

        if not config.endpoint:
            raise ValueError("HuggingFace endpoint required")

        self.endpoint = config.endpoint
        self.headers = {}

        if config.api_key:
            self.headers["Authorization"] = f"Bearer {config.api_key}"

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate response using HuggingFace Inference API."""
        import aiohttp

        if not self.validate_prompt(prompt):
            raise ValueError("Invalid prompt")

        full_prompt = prompt
        if system_prompt:
            full_prompt = f"{system_prompt}\n\n{prompt}"

        payload = {
            "inputs": full_prompt,
            "parameters": {
                "max_new_tokens": kwargs.get("max_tokens", self.config.max_tokens),
                "temperature": kwargs.get("temperature", self.config.temperature),
                "top_p": self.config.top_p,
                "return_full_text": False
            }
        }

        start_time = time.time()

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.endpoint,
                    headers=self.headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds)
                ) as response:
                    response.raise_for_status()
                    result = await response.json()

            latency_ms = (time.time() - start_time) * 1000

            if isinstance(result, list) and len(result) > 0:
                generated_text = result[0].get("generated_text", "")
            else:
                generated_text = result.get("generated_text", "")

            logger.info(
                "LLM_GENERATION_SUCCEEDED",
                extra={
                    "model": self.config.model_name,
                    "latency_ms": latency_ms
                }
            )

            return LLMResponse(
                text=generated_text,
                model=self.config.model_name,
                provider=self.config.provider.value,
                latency_ms=latency_ms,
                metadata={"endpoint": self.endpoint}
            )

        except Exception as e:
            logger.error(
                "LLM_GENERATION_FAILED",
                extra={
                    "model": self.config.model_name,
                    "error": str(e)
                }
            )
            raise


class OpenAILLM(BaseLLM):
    """OpenAI chat completions implementation."""

    def __init__(self, config: LLMConfig):
        """Initialize OpenAI LLM.

        Args:
            config: LLM configuration with API key
        """
        super().__init__(config)

        if not config.api_key:
            raise ValueError("OpenAI API key required")

        import openai
        self.client = openai.AsyncOpenAI(api_key=config.api_key)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate response using OpenAI API.

        Recognized kwargs: ``max_tokens``, ``temperature`` and
        ``json_mode`` (request a JSON object response).
        """
        if not self.validate_prompt(prompt):
            raise ValueError("Invalid prompt")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        extra_args = {}
        if kwargs.get("json_mode"):
            extra_args["response_format"] = {"type": "json_object"}

        start_time = time.time()

        try:
            response = await self.client.chat.completions.create(
                model=self.config.model_name,
                messages=messages,
                max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
                temperature=kwargs.get("temperature", self.config.temperature),
                top_p=self.config.top_p,
                timeout=self.config.timeout_seconds,
                **extra_args
            )

            latency_ms = (time.time() - start_time) * 1000

            generated_text = response.choices[0].message.content or ""
            tokens_used = response.usage.total_tokens if response.usage else None

            logger.info(
                "OPENAI_GENERATION_SUCCEEDED",
                extra={
                    "model": self.config.model_name,
                    "latency_ms": latency_ms,
                    "tokens_used": tokens_used
                }
            )

            return LLMResponse(
                text=generated_text,
                model=self.config.model_name,
                provider=self.config.provider.value,
                tokens_used=tokens_used,
                latency_ms=latency_ms
            )

        except Exception as e:
            logger.error(
                "OPENAI_GENERATION_FAILED",
                extra={
                    "model": self.config.model_name,
                    "error": str(e)
                }
            )
            raise

    async def close(self) -> None:
        await self.client.close()


def create_llm(config: LLMConfig) -> BaseLLM:
    """Factory function to create LLM instance.

    Args:
        config: LLM configuration

    Returns:
        BaseLLM instance

    Raises:
        ValueError: If provider not supported
    """
    if config.provider == LLMProvider.HUGGINGFACE:
        return HuggingFaceLLM(config)
    elif config.provider == LLMProvider.OPENAI:
        return OpenAILLM(config)
    else:
        raise ValueError(f"Unsupported provider: {config.provider}")
