"""Tests for the LLM provider clients."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from coordinator.llm import (
    GeminiProvider,
    LLMProvider,
    MeteredLLM,
    OpenAIProvider,
    Usage,
    create_provider,
)


def anthropic_client(text="Test response"):
    client = Mock()
    response = Mock()
    response.content = [Mock(text=text)]
    client.messages.create = AsyncMock(return_value=response)
    return client


class TestLLMProviderInit:
    """Tests for LLMProvider initialization."""

    def test_init_with_api_key(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        with patch("coordinator.llm.llm_provider.anthropic.AsyncAnthropic"):
            provider = LLMProvider()
            assert provider is not None

    def test_init_without_api_key(self, monkeypatch):
        """Test initialization without API key raises error."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with patch("coordinator.llm.llm_provider.anthropic.AsyncAnthropic"):
            with pytest.raises(ValueError):
                LLMProvider()


class TestLLMProviderComplete:
    """Tests for LLMProvider.complete() method."""

    @pytest.mark.asyncio
    async def test_complete_sends_correct_format(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        client = anthropic_client("Response")

        with patch(
            "coordinator.llm.llm_provider.anthropic.AsyncAnthropic", return_value=client
        ):
            provider = LLMProvider(model="claude-sonnet-4-5")
            response = await provider.complete(
                messages=[
                    {"role": "user", "content": "Hello"},
                    {"role": "assistant", "content": "Hi"},
                ],
                system="You are helpful",
                max_tokens=2048,
            )

        assert response == "Response"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-sonnet-4-5"
        assert kwargs["max_tokens"] == 2048
        assert kwargs["system"] == "You are helpful"
        assert len(kwargs["messages"]) == 2

    @pytest.mark.asyncio
    async def test_model_override_and_no_system(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        client = anthropic_client()

        with patch(
            "coordinator.llm.llm_provider.anthropic.AsyncAnthropic", return_value=client
        ):
            provider = LLMProvider()
            await provider.complete(
                messages=[{"role": "user", "content": "Test"}], model="claude-haiku"
            )

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-haiku"
        assert kwargs["max_tokens"] == 1024
        assert "system" not in kwargs

    @pytest.mark.asyncio
    async def test_complete_wraps_errors(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        client = Mock()
        client.messages.create = AsyncMock(side_effect=Exception("API Error"))

        with patch(
            "coordinator.llm.llm_provider.anthropic.AsyncAnthropic", return_value=client
        ):
            provider = LLMProvider()
            with pytest.raises(RuntimeError, match="API Error"):
                await provider.complete(messages=[{"role": "user", "content": "Test"}])

    @pytest.mark.asyncio
    async def test_empty_content_returns_empty_string(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        client = Mock()
        client.messages.create = AsyncMock(return_value=Mock(content=[]))

        with patch(
            "coordinator.llm.llm_provider.anthropic.AsyncAnthropic", return_value=client
        ):
            provider = LLMProvider()
            assert await provider.complete(messages=[]) == ""


class TestOpenAIProvider:
    """Tests for OpenAIProvider."""

    def test_init_without_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        with patch("coordinator.llm.openai_provider.AsyncOpenAI"):
            with pytest.raises(ValueError):
                OpenAIProvider()

    @pytest.mark.asyncio
    async def test_system_prompt_prepended(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "test_key")
        client = Mock()
        response = Mock()
        response.choices = [Mock(message=Mock(content="ok"))]
        client.chat.completions.create = AsyncMock(return_value=response)

        with patch("coordinator.llm.openai_provider.AsyncOpenAI", return_value=client):
            provider = OpenAIProvider(model="gpt-5-mini")
            result = await provider.complete(
                messages=[{"role": "user", "content": "Hello"}],
                system="Be brief",
                max_tokens=500,
            )

        assert result == "ok"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-5-mini"
        assert kwargs["max_completion_tokens"] == 500
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief"}
        assert kwargs["messages"][1] == {"role": "user", "content": "Hello"}

    @pytest.mark.asyncio
    async def test_errors_wrapped(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "test_key")
        client = Mock()
        client.chat.completions.create = AsyncMock(side_effect=Exception("rate limited"))

        with patch("coordinator.llm.openai_provider.AsyncOpenAI", return_value=client):
            provider = OpenAIProvider()
            with pytest.raises(RuntimeError, match="rate limited"):
                await provider.complete(messages=[{"role": "user", "content": "x"}])


class TestGeminiProvider:
    """Tests for GeminiProvider."""

    def test_init_without_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        with patch("coordinator.llm.gemini_provider.genai.Client"):
            with pytest.raises(ValueError):
                GeminiProvider()

    @pytest.mark.asyncio
    async def test_roles_mapped(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test_key")
        client = Mock()
        client.aio.models.generate_content = AsyncMock(return_value=Mock(text="plan"))

        with patch("coordinator.llm.gemini_provider.genai.Client", return_value=client):
            provider = GeminiProvider(model="gemini-2.5-flash")
            result = await provider.complete(
                messages=[
                    {"role": "user", "content": "Hi"},
                    {"role": "assistant", "content": "Hello"},
                ]
            )

        assert result == "plan"
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert [c.role for c in kwargs["contents"]] == ["user", "model"]


class TestCreateProvider:
    """Tests for create_provider()."""

    def test_claude_models(self):
        with patch("coordinator.llm.factory.LLMProvider") as cls:
            create_provider("claude-sonnet-4-5")
        cls.assert_called_once_with(model="claude-sonnet-4-5")

    def test_gemini_models(self):
        with patch("coordinator.llm.factory.GeminiProvider") as cls:
            create_provider("gemini-2.5-pro")
        cls.assert_called_once_with(model="gemini-2.5-pro")

    def test_everything_else_openai(self):
        with patch("coordinator.llm.factory.OpenAIProvider") as cls:
            create_provider("gpt-5-mini")
        cls.assert_called_once_with(model="gpt-5-mini")


class TestUsageReporting:
    """Each client reports token usage from its response to the metering wrapper."""

    @pytest.mark.asyncio
    async def test_anthropic_usage(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        client = anthropic_client()
        client.messages.create.return_value.usage = Mock(input_tokens=12, output_tokens=30)
        seen = []

        with patch(
            "coordinator.llm.llm_provider.anthropic.AsyncAnthropic", return_value=client
        ):
            llm = MeteredLLM(LLMProvider(model="claude-sonnet-4-5"), seen.append)
            await llm.complete(messages=[{"role": "user", "content": "Hi"}])

        assert seen == [Usage("claude-sonnet-4-5", 12, 30)]

    @pytest.mark.asyncio
    async def test_openai_usage(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "test_key")
        client = Mock()
        response = Mock()
        response.choices = [Mock(message=Mock(content="ok"))]
        response.usage = Mock(prompt_tokens=7, completion_tokens=3)
        client.chat.completions.create = AsyncMock(return_value=response)
        seen = []

        with patch("coordinator.llm.openai_provider.AsyncOpenAI", return_value=client):
            llm = MeteredLLM(OpenAIProvider(model="gpt-5-mini"), seen.append)
            await llm.complete(messages=[{"role": "user", "content": "Hi"}], model="o4-mini")

        assert seen == [Usage("o4-mini", 7, 3)]

    @pytest.mark.asyncio
    async def test_openai_missing_usage(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "test_key")
        client = Mock()
        response = Mock(usage=None)
        response.choices = [Mock(message=Mock(content="ok"))]
        client.chat.completions.create = AsyncMock(return_value=response)
        seen = []

        with patch("coordinator.llm.openai_provider.AsyncOpenAI", return_value=client):
            llm = MeteredLLM(OpenAIProvider(), seen.append)
            assert await llm.complete(messages=[]) == "ok"

        assert seen == []

    @pytest.mark.asyncio
    async def test_gemini_usage_metadata(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test_key")
        client = Mock()
        response = Mock(text="plan")
        response.usage_metadata = Mock(prompt_token_count=40, candidates_token_count=None)
        client.aio.models.generate_content = AsyncMock(return_value=response)
        seen = []

        with patch("coordinator.llm.gemini_provider.genai.Client", return_value=client):
            llm = MeteredLLM(GeminiProvider(model="gemini-2.5-flash"), seen.append)
            await llm.complete(messages=[{"role": "user", "content": "Hi"}])

        assert seen == [Usage("gemini-2.5-flash", 40, 0)]
