"""Text Condensing Module

This module shortens rephrased text that overshoots the word limit. It
utilizes a state graph to manage the process, allowing for iterative
summarization until the desired length is achieved or retries run out.

Exports
-------
TextMorphGraph : The compiled state graph for text condensing.
TextMorphState : The state and API for text condensing operations.
condense : A wrapper function that provides a higher level API.
"""

import logging
import time
from .nodes import validate_start, track_progress, should_continue, summarizer, word_count
from .state import AgentState as TextMorphState
from langgraph.graph import StateGraph, START, END

logger = logging.getLogger(__name__)

nodes = StateGraph(TextMorphState)

# Node registrations
nodes.add_node("validate_start", validate_start)
nodes.add_node("summarizer", summarizer)
nodes.add_node("track_progress", track_progress)

# Edge registrations
nodes.add_edge(START, "validate_start")
nodes.add_conditional_edges("validate_start", should_continue, {
    "summarize": "summarizer",
    "done": END
})

# Loop edges
nodes.add_edge("summarizer", "track_progress")
nodes.add_conditional_edges("track_progress", should_continue, {
    "summarize": "summarizer",
    "done": END
})

TextMorphGraph = nodes.compile()

async def condense(text, max_words, max_retries=3, model: str = "gpt-4o-mini") -> list:
    """Run the TextMorphGraph to bring `text` within `max_words` words.

    Args:
        text (str): The text to be condensed.
        max_words (int): Inclusive upper bound on the word count.
        max_retries (int): The maximum number of LLM calls.
        model (str): The chat model to use.

    Returns:
        list[bool, str, int, int, float]: A list containing:
            - success (bool): Whether the text now fits.
            - condensed_text (str): The condensed text, or the input on failure.
            - total_calls (int): The total number of LLM calls made.
            - num_words (int): The number of words in the returned text.
            - elapsed_ms (float): The time taken in milliseconds.
    """

    start = time.time()

    try:
        result: TextMorphState = await TextMorphGraph.ainvoke(TextMorphState(
            text=text,
            max_words=max_words,
            messages=[],
            responses=[],
            model=model,
            max_retries=max_retries,
            success=False
        ))

    except Exception as e:
        logger.error(f"Error during text condensing: {e}")
        raise

    elapsed_ms = (time.time() - start) * 1000

    total_calls = max_retries - result['max_retries']

    if not result['success']:
        return [False, text, total_calls, word_count(text), elapsed_ms]
    else:
        final = result['responses'][-1]
        return [True, final, total_calls, word_count(final), elapsed_ms]


__all__ = [
    "TextMorphGraph",
    "TextMorphState",
    "condense",
    "word_count",
]
