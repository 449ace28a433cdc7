"""Tests for JSON completions."""

import pytest

from coordinator.errors import LLMResponseError
from coordinator.llm import complete_json, complete_text, parse_json_response


class TestParseJsonResponse:
    def test_plain_json(self):
        assert parse_json_response('{"intent": "question"}') == {"intent": "question"}

    def test_fenced_json(self):
        text = '```json\n{"urgency": "high"}\n```'
        assert parse_json_response(text) == {"urgency": "high"}

    def test_bare_fence(self):
        assert parse_json_response('```\n[1, 2]\n```') == [1, 2]

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_raises(self, text):
        with pytest.raises(LLMResponseError):
            parse_json_response(text)

    def test_garbage_raises(self):
        with pytest.raises(LLMResponseError):
            parse_json_response("I think the answer is yes")


class TestCompleteJson:
    @pytest.mark.asyncio
    async def test_passes_prompt_and_options(self, json_llm):
        llm = json_llm({"ok": True})

        result = await complete_json(llm, "Analyze", system="sys", max_tokens=300, model="m")

        assert result == {"ok": True}
        llm.complete.assert_awaited_once_with(
            messages=[{"role": "user", "content": "Analyze"}],
            system="sys",
            max_tokens=300,
            model="m",
        )

    @pytest.mark.asyncio
    async def test_non_object_raises(self, json_llm):
        with pytest.raises(LLMResponseError):
            await complete_json(json_llm([1, 2, 3]), "Analyze")

    @pytest.mark.asyncio
    async def test_complete_text(self, mock_llm):
        assert await complete_text(mock_llm, "Say hi") == "Test response"
