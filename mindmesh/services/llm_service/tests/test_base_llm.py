"""Tests for LLM clients."""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from mindmesh.services.llm_service.base_llm import (
    HuggingFaceLLM,
    LLMConfig,
    LLMProvider,
    OpenAILLM,
    create_llm,
)


def _openai_config(**overrides):
    values = dict(provider=LLMProvider.OPENAI, model_name="gpt-test", api_key="sk-test")
    values.update(overrides)
    return LLMConfig(**values)


class TestLLMConfig:
    """Tests for LLMConfig.from_env."""

    def test_from_env_openai(self):
        with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-env", "LLM_MODEL": "gpt-x"}, clear=True):
            config = LLMConfig.from_env()

        assert config.provider == LLMProvider.OPENAI
        assert config.api_key == "sk-env"
        assert config.model_name == "gpt-x"

    def test_from_env_without_credentials_returns_none(self):
        with patch.dict("os.environ", {}, clear=True):
            assert LLMConfig.from_env() is None

    def test_from_env_huggingface_requires_endpoint(self):
        with patch.dict("os.environ", {"LLM_PROVIDER": "huggingface"}, clear=True):
            assert LLMConfig.from_env() is None

        with patch.dict(
            "os.environ",
            {"LLM_PROVIDER": "huggingface", "LLM_ENDPOINT": "http://hf.local/model"},
            clear=True,
        ):
            config = LLMConfig.from_env()

        assert config.provider == LLMProvider.HUGGINGFACE
        assert config.endpoint == "http://hf.local/model"


class TestCreateLLM:
    """Tests for the provider factory."""

    @patch("openai.AsyncOpenAI")
    def test_creates_openai(self, mock_client):
        llm = create_llm(_openai_config())

        assert isinstance(llm, OpenAILLM)
        mock_client.assert_called_once_with(api_key="sk-test")

    def test_creates_huggingface(self):
        llm = create_llm(LLMConfig(
            provider=LLMProvider.HUGGINGFACE,
            model_name="hf-model",
            endpoint="http://hf.local",
            api_key="hf-key",
        ))

        assert isinstance(llm, HuggingFaceLLM)
        assert llm.headers["Authorization"] == "Bearer hf-key"

    def test_huggingface_requires_endpoint(self):
        with pytest.raises(ValueError):
            HuggingFaceLLM(LLMConfig(provider=LLMProvider.HUGGINGFACE, model_name="m"))

    def test_openai_requires_api_key(self):
        with pytest.raises(ValueError):
            OpenAILLM(_openai_config(api_key=None))


class TestValidatePrompt:
    """Tests for prompt validation."""

    @patch("openai.AsyncOpenAI")
    def test_rejects_empty_and_oversized(self, mock_client):
        llm = create_llm(_openai_config())

        assert llm.validate_prompt("hello") is True
        assert llm.validate_prompt("   ") is False
        assert llm.validate_prompt("x" * 10001) is False


@pytest.mark.asyncio
class TestOpenAIGenerate:
    """Tests for OpenAILLM.generate with a mocked client."""

    @patch("openai.AsyncOpenAI")
    async def test_generate_returns_text(self, mock_client_cls):
        completion = MagicMock()
        completion.choices = [MagicMock()]
        completion.choices[0].message.content = "I'm here for you."
        completion.usage.total_tokens = 42
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=completion)
        mock_client_cls.return_value = client

        llm = OpenAILLM(_openai_config())
        response = await llm.generate("hello", system_prompt="be kind", json_mode=True)

        assert response.text == "I'm here for you."
        assert response.tokens_used == 42
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "be kind"}
        assert kwargs["response_format"] == {"type": "json_object"}

    @patch("openai.AsyncOpenAI")
    async def test_generate_propagates_errors(self, mock_client_cls):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=Exception("quota exceeded"))
        mock_client_cls.return_value = client

        llm = OpenAILLM(_openai_config())

        with pytest.raises(Exception, match="quota exceeded"):
            await llm.generate("hello")

    @patch("openai.AsyncOpenAI")
    async def test_generate_rejects_invalid_prompt(self, mock_client_cls):
        llm = OpenAILLM(_openai_config())

        with pytest.raises(ValueError):
            await llm.generate("")
