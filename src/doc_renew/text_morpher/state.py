"""Define the state schema for text condensing operations.

This module contains the `AgentState` TypedDict that represents the complete
state for the text_morpher LangGraph workflow, including input text, target
word limit, LLM configuration, and execution tracking.
"""
from typing import List, TypedDict

class AgentState(TypedDict):
    """TypedDict representing the state for text condensing operations.
    Attributes:
        model (str): The model to use for inference. Defaults to "gpt-4o-mini".
        text (str): The text to be condensed.
        max_words (int): Inclusive upper bound on the number of words.
        max_retries (int): Maximum number of retries allowed for total LLM calls. Defaults to 3.
        messages (List[dict]): The message history for the LLM.
        responses (List[str]): The list of content received from the LLM.
        success (bool): Whether condensing was successful. Defaults to False.
    """
    model: str = "gpt-4o-mini"
    text: str
    max_words: int
    max_retries: int = 3
    messages: List[dict]
    responses: List[str]
    success: bool = False
