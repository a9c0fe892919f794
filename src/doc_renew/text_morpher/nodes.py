"""LangGraph node functions for iterative text condensing.

This module provides the node functions for a LangGraph-based state graph
that shortens a rephrased text until it fits under a word limit. The graph
orchestrates an iterative process of summarization using LLM calls until the
text fits or retries are exhausted.

Each node function operates on `AgentState`, a TypedDict that tracks the
operation's progress, LLM conversation history, and success status.
"""

from langchain_openai import ChatOpenAI
from langchain_core.messages import SystemMessage, HumanMessage
from .state import AgentState


def word_count(text: str) -> int:
    return len(text.split())


def get_system_prompt() -> str:
    """Generate the system prompt for the condensing LLM.

    Returns:
        The system prompt string to be wrapped in a `SystemMessage`.
    """
    return (
        "You are a text condensing agent. Your goal is to shorten the provided text "
        "so it fits within a specified word limit. "
        "Always keep the text natural, human readable and faithful to the original meaning. "
        "Always respond with only the condensed text, without any additional commentary or explanations."
    )

def track_progress(state: AgentState) -> AgentState:
    """Update retry counter and success flag based on the latest LLM response.

    Args:
        state: The current agent state containing responses and max_words.

    Returns:
        The updated state with decremented max_retries and potentially updated
        success flag.
    """
    last_response = state["responses"][-1] if state["responses"] else None

    if not last_response:
        return state
    state["max_retries"] -= 1
    if word_count(last_response) <= state["max_words"]:
        state["success"] = True
    return state

def should_continue(state: AgentState) -> str:
    """Determine the next graph edge based on current word count and retry count.

    Returns:
        One of "summarize" or "done":
        - "summarize": text is too long and retries remain
        - "done": text is within the limit or retries are exhausted
    """
    last_response = state["responses"][-1] if state["responses"] else state["text"]

    if state["success"]:
        return "done"
    if state["max_retries"] <= 0 and state["responses"]:
        return "done"
    if word_count(last_response) > state["max_words"]:
        return "summarize"
    return "done"

async def summarizer(state: AgentState) -> AgentState:
    """Invoke the LLM to shorten text below the word limit.

    For retries, the prompt references the previous response length to guide
    the model.

    Args:
        state: The current agent state with text, max_words, messages, and responses.

    Returns:
        The updated state with the LLM's condensed text appended to responses
        and the conversation extended with the new prompt and response.
    """
    llm = ChatOpenAI(model=state["model"])
    max_words = state["max_words"]

    if state["responses"]:
        prompt = (
            f"That is {word_count(state['responses'][-1])} words. "
            f"Make it shorter. Rewrite the following text in fewer than {max_words} words. "
            "Output ONLY the rewritten text, no preamble.\n\n"
            f"Text:\n{state['responses'][-1]}\n"
        )
    else:
        prompt = (
            f"Rewrite the following text in fewer than {max_words} words. "
            "Output ONLY the rewritten text, no preamble.\n\n"
            f"Text:\n{state['text']}\n"
        )

    response = await llm.ainvoke(state["messages"] + [HumanMessage(content=prompt)])

    state["responses"].append(response.content.strip())
    state["messages"].extend([HumanMessage(content=prompt), response])

    return state

def validate_start(state: AgentState) -> AgentState:
    """Validate input state and initialize the condensing task.

    Handles the edge case where the input text already fits the word limit.

    Returns:
        The validated and initialized state with:
        - System prompt injected into messages if not already present
        - success set to True and text added to responses if already in range

    Raises:
        ValueError: If text is empty or max_words is not positive.
    """
    text = state["text"]

    if not text or not text.strip():
        raise ValueError("Invalid: text to condense is empty.")
    if state["max_words"] < 1:
        raise ValueError("Invalid: max_words must be at least 1.")
    if word_count(text) <= state["max_words"]:
        state["success"] = True
        state["responses"].append(text)
    if not state["messages"] or not isinstance(state["messages"][0], SystemMessage):
        state["messages"].insert(0, SystemMessage(content=get_system_prompt()))

    return state
