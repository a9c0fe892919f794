"""Rephrase a single piece of document text within a word limit.

The rewrite workflow consists of two stages:
1. Call the responder (`doc_renew.responder.rephrase`) to rephrase the text.
2. If the rephrased text runs over the word limit, use the condensing graph
   (`doc_renew.text_morpher.condense`) to shorten it.

Both stages together count as a single text regeneration against the run's
budget; the budget is checked by the caller before `rewrite_text` is invoked.

See Also:
    `doc_renew.walker.TreeWalker`: Calls `rewrite_text` for each text node.
"""

import time
from doc_renew.errors import CapabilityError
from doc_renew.responder import rephrase
from doc_renew.text_morpher import condense, word_count


async def rewrite_text(text: str, max_words: int = 100, model: str = "gpt-4o-mini") -> tuple[str, float]:
    """Rephrases one trimmed text payload.

    Args:
        text: The trimmed, unescaped text to rephrase.
        max_words: Inclusive upper bound on the replacement's word count.
        model: The LLM model to use for text generation.

    Returns:
        A tuple of (replacement_string, elapsed_ms).

    Raises:
        CapabilityError: If the responder fails, or condensing cannot bring
            the replacement within `max_words`.
    """
    start = time.time()

    response = await rephrase(text, model=model)
    replacement = response.text.strip()

    if word_count(replacement) <= max_words:
        elapsed_ms = (time.time() - start) * 1000
        return replacement, elapsed_ms

    try:
        success, condensed, _, words, _ = await condense(
            text=replacement,
            max_words=max_words,
            max_retries=3,
            model=model,
        )
    except Exception as e:
        raise CapabilityError(f"Condensing failed: {e}") from e

    if not success:
        raise CapabilityError(
            f"Condensing failed. Got {words} words, needed at most {max_words}."
        )

    elapsed_ms = (time.time() - start) * 1000
    return condensed, elapsed_ms
