import asyncio

import pytest
from unittest.mock import patch, AsyncMock, MagicMock
from langchain_core.messages import SystemMessage, HumanMessage

from doc_renew.config import REPHRASE_SYSTEM_PROMPT
from doc_renew.errors import CapabilityError
from doc_renew.responder import rephrase, Response


def _mock_chat(**ainvoke_kwargs):
    mock_llm = MagicMock()
    mock_llm.ainvoke = AsyncMock(**ainvoke_kwargs)
    mock_chat = MagicMock()
    mock_chat.with_structured_output.return_value = mock_llm
    return mock_chat, mock_llm


class TestRephrase:

    @pytest.mark.asyncio
    async def test_raises_on_blank_text(self):
        with pytest.raises(ValueError, match="empty"):
            await rephrase("   ")

    @pytest.mark.asyncio
    async def test_returns_response_on_success(self):
        expected = Response(text="Greetings, world")
        mock_chat, _ = _mock_chat(return_value=expected)

        with patch("doc_renew.responder.ChatOpenAI", return_value=mock_chat):
            result = await rephrase("Hello world")

        assert result == expected
        assert result.text == "Greetings, world"

    @pytest.mark.asyncio
    async def test_sends_fixed_instruction_and_text(self):
        mock_chat, mock_llm = _mock_chat(return_value=Response(text="Hi"))

        with patch("doc_renew.responder.ChatOpenAI", return_value=mock_chat):
            await rephrase("Hello world")

        mock_chat.with_structured_output.assert_called_once_with(Response)
        system, human = mock_llm.ainvoke.call_args[0][0]
        assert isinstance(system, SystemMessage)
        assert system.content == REPHRASE_SYSTEM_PROMPT
        assert isinstance(human, HumanMessage)
        assert human.content == "Hello world"

    @pytest.mark.asyncio
    async def test_uses_specified_model(self):
        mock_chat, _ = _mock_chat(return_value=Response(text="Result"))

        with patch("doc_renew.responder.ChatOpenAI", return_value=mock_chat) as mock_cls:
            await rephrase("Hello", model="gpt-4o")

        mock_cls.assert_called_once_with(model="gpt-4o")

    @pytest.mark.asyncio
    async def test_timeout_raises_capability_error(self):
        mock_chat, _ = _mock_chat(side_effect=asyncio.TimeoutError)

        with patch("doc_renew.responder.ChatOpenAI", return_value=mock_chat), \
             patch("doc_renew.responder.asyncio.wait_for", side_effect=asyncio.TimeoutError):
            with pytest.raises(CapabilityError, match="timed out"):
                await rephrase("Hello")

    @pytest.mark.asyncio
    async def test_api_error_raises_capability_error(self):
        mock_chat, _ = _mock_chat(side_effect=RuntimeError("rate limited"))

        with patch("doc_renew.responder.ChatOpenAI", return_value=mock_chat):
            with pytest.raises(CapabilityError, match="rate limited"):
                await rephrase("Hello")

    @pytest.mark.asyncio
    async def test_empty_response_raises_capability_error(self):
        mock_chat, _ = _mock_chat(return_value=Response(text="  "))

        with patch("doc_renew.responder.ChatOpenAI", return_value=mock_chat):
            with pytest.raises(CapabilityError, match="no text"):
                await rephrase("Hello")


class TestResponseModel:

    def test_response_fields(self):
        r = Response(text="hello")
        assert r.text == "hello"
