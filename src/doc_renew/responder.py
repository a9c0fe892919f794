"""LLM-based rephrasing of document text.

This module provides an async agent that uses OpenAI's GPT models to rewrite
a piece of visible document text into natural, human-readable sentences or
phrases. The responder leverages LangChain for LLM orchestration and Pydantic
for structured output validation.

See Also:
    `doc_renew.rewrite`: Combines the responder with length enforcement.
    `doc_renew.config.REPHRASE_SYSTEM_PROMPT`: The fixed instruction sent with every request.
"""
from langchain_core.messages import SystemMessage, HumanMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field
import asyncio

from doc_renew.config import REPHRASE_SYSTEM_PROMPT
from doc_renew.errors import CapabilityError

REQUEST_TIMEOUT = 30.0


class Response(BaseModel):
    """Structured output model for rephrasing responses.

    Attributes:
        text: The rephrased text that replaces the original.
    """
    text: str = Field(description="The rephrased version of the input text.")


async def rephrase(text: str, model: str = "gpt-4o-mini") -> Response:
    """Rephrase a piece of document text using an LLM.

    Sends the text to an OpenAI GPT model via LangChain along with the fixed
    rephrasing instruction and requests structured output in the form of a
    `Response` object.

    The function enforces a 30-second timeout on the LLM call.

    Args:
        text: The trimmed text to rephrase. Must not be blank.
        model: The OpenAI model identifier to use for generation.
            Defaults to "gpt-4o-mini".

    Returns:
        A Response object containing the rephrased text.

    Raises:
        ValueError: If `text` is blank.
        CapabilityError: If the request times out, fails, or returns no text.
    """
    if not text or not text.strip():
        raise ValueError("Text to rephrase is empty.")

    llm = ChatOpenAI(model=model).with_structured_output(Response)

    messages = [
        SystemMessage(content=REPHRASE_SYSTEM_PROMPT),
        HumanMessage(content=text),
    ]

    try:
        response = await asyncio.wait_for(
            llm.ainvoke(messages),
            timeout=REQUEST_TIMEOUT
        )
    except asyncio.TimeoutError as e:
        raise CapabilityError(f"Rephrase request timed out after {REQUEST_TIMEOUT:.0f}s.") from e
    except Exception as e:
        raise CapabilityError(f"Rephrase request failed: {e}") from e

    if response is None or not response.text.strip():
        raise CapabilityError("Rephrase request returned no text.")
    return response
