"""Per-run quota of text and image regenerations.

A `GenerationBudget` is created (or reset) at the start of a run and passed
explicitly through the pipeline; nothing else may invoke a generation
capability without a successful `reserve` first. Execution is single-threaded
and cooperative, so the check-and-increment in `reserve` needs no lock.
"""

TEXT = "text"
IMAGE = "image"

KINDS = (TEXT, IMAGE)


class GenerationBudget:
    """Remaining text and image regeneration quota for one run.

    Attributes:
        text_limit: Maximum number of text nodes that may be rephrased.
        image_limit: Maximum number of images that may be regenerated.
        text_used: Text reservations granted so far.
        image_used: Image reservations granted so far.

    Example:
        ```python
        budget = GenerationBudget(text_limit=1, image_limit=0)
        budget.reserve("text")   # True
        budget.reserve("text")   # False, limit reached
        budget.reserve("image")  # False, images disabled
        ```
    """

    def __init__(self, text_limit: int = 30, image_limit: int = 0) -> None:
        """Initialize a budget with nothing used.

        Args:
            text_limit: Non-negative text regeneration limit.
            image_limit: Non-negative image regeneration limit. Zero disables
                image processing.

        Raises:
            ValueError: If either limit is negative.
        """
        if text_limit < 0 or image_limit < 0:
            raise ValueError(
                f"Budget limits must be non-negative, got text={text_limit}, image={image_limit}."
            )
        self.text_limit = text_limit
        self.image_limit = image_limit
        self.text_used = 0
        self.image_used = 0

    def _check_kind(self, kind: str) -> None:
        if kind not in KINDS:
            raise ValueError(f"Unknown budget kind '{kind}', expected one of {KINDS}.")

    def limit(self, kind: str) -> int:
        self._check_kind(kind)
        return getattr(self, f"{kind}_limit")

    def used(self, kind: str) -> int:
        self._check_kind(kind)
        return getattr(self, f"{kind}_used")

    def remaining(self, kind: str) -> int:
        return self.limit(kind) - self.used(kind)

    def exhausted(self, kind: str) -> bool:
        return self.remaining(kind) <= 0

    def reserve(self, kind: str) -> bool:
        """Reserve one regeneration of the given kind.

        Args:
            kind: Either `"text"` or `"image"`.

        Returns:
            True if a unit was reserved (the used counter was incremented),
            False if the limit was already reached. Nothing changes on False.
        """
        if self.exhausted(kind):
            return False
        setattr(self, f"{kind}_used", self.used(kind) + 1)
        return True

    def reset(self) -> None:
        """Zero both used counters at the start of a new run."""
        self.text_used = 0
        self.image_used = 0

    def snapshot(self) -> dict:
        """Return the budget state as a plain dict for run summaries."""
        return {
            kind: {
                "limit": self.limit(kind),
                "used": self.used(kind),
                "exhausted": self.exhausted(kind),
            }
            for kind in KINDS
        }

    def __repr__(self) -> str:
        return (
            f"GenerationBudget(text={self.text_used}/{self.text_limit}, "
            f"image={self.image_used}/{self.image_limit})"
        )
