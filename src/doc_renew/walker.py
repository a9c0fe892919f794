"""Depth-first traversal that rewrites eligible nodes of a document tree.

The walker visits nodes in document order (pre-order, children left to right)
and decides for each one whether it is a rewrite candidate:

- A non-blank `Text` node outside `<script>`/`<style>` is rephrased. Only
  the trimmed payload is sent; surrounding whitespace is kept.
- An image element (by default `<img>` with a non-empty `src`) has its
  asset resolved in the workspace, normalized, regenerated and written back as
  a `.png`, after which the reference attribute is pointed at the new file.
- Anything else is left alone, but its children are still visited.

Every rewrite first reserves a unit from the run's `GenerationBudget`; when a
reservation fails the node is skipped and the walk carries on. Each
capability call runs in its own failure boundary, so one failing node never
discards the edits already made to the rest of the document. A cancellation
event is checked before every node; once it is set no further nodes are
visited, and whatever was already rewritten stays rewritten.

See Also:
    `doc_renew.pipeline.DocumentPipeline`: Parses, walks and serializes a document.
"""

import asyncio
import logging
from collections import Counter
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from doc_renew.budget import GenerationBudget, TEXT, IMAGE
from doc_renew.document import Container, Element, Node, Text
from doc_renew.errors import AssetNotFound, CapabilityError, NormalizationError
from doc_renew.images import NormalizedImage, png_path_for
from doc_renew.parser import RAW_TEXT_ELEMENTS
from doc_renew.resolver import WorkspaceResolver, is_external

logger = logging.getLogger(__name__)

Rephraser = Callable[[str], Awaitable[str]]
Normalizer = Callable[[Path], NormalizedImage]
Regenerator = Callable[[bytes], Awaitable[bytes]]

DEFAULT_IMAGE_TAGS = {"img": "src"}


def png_reference(reference: str) -> str:
    """Rewrite the extension of a document reference to `.png`.

    The directory part, query and fragment are preserved as written.

    Example:
        ```python
        png_reference("./images/photo.jpg?v=2")  # "./images/photo.png?v=2"
        ```
    """
    parts = urlsplit(reference)
    path = parts.path
    name = PurePosixPath(path).name
    stem = name.rsplit(".", 1)[0] if "." in name.lstrip(".") else name
    new_path = path[:len(path) - len(name)] + stem + ".png"
    return parts._replace(path=new_path).geturl()


def count_candidates(root: Node, image_tags: Optional[Dict[str, str]] = None) -> Dict[str, int]:
    """Count the text and image nodes a walk of `root` would try to rewrite."""
    image_tags = image_tags if image_tags is not None else DEFAULT_IMAGE_TAGS
    counts = {"text": 0, "image": 0, "external": 0}
    stack = [(root, False)]
    while stack:
        current, in_raw_text = stack.pop()
        if isinstance(current, Text):
            if not in_raw_text and current.value.strip():
                counts["text"] += 1
        elif isinstance(current, Element) and current.tag in image_tags:
            reference = current.get(image_tags[current.tag])
            if reference:
                counts["external" if is_external(reference) else "image"] += 1
        if isinstance(current, Container):
            raw = in_raw_text or (isinstance(current, Element) and current.tag in RAW_TEXT_ELEMENTS)
            stack.extend((child, raw) for child in reversed(current.children))
    return counts


class WalkReport:
    """Outcome of walking one document.

    Attributes:
        text_replaced: Text nodes whose content changed.
        images_replaced: Image nodes whose asset was regenerated.
        calls: Capability invocations attempted.
        skipped: Count of skipped candidate nodes per reason.
        failures: One dict per contained failure with the node id, reason
            and error message.
        cancelled: Whether the walk stopped because of a cancellation request.
    """

    def __init__(self) -> None:
        self.text_replaced = 0
        self.images_replaced = 0
        self.calls = 0
        self.skipped: Counter = Counter()
        self.failures: List[Dict[str, str]] = []
        self.cancelled = False

    @property
    def mutated(self) -> int:
        return self.text_replaced + self.images_replaced

    def merge(self, other: "WalkReport") -> None:
        """Add the counts of another report into this one."""
        self.text_replaced += other.text_replaced
        self.images_replaced += other.images_replaced
        self.calls += other.calls
        self.skipped.update(other.skipped)
        self.failures.extend(other.failures)
        self.cancelled = self.cancelled or other.cancelled

    def to_dict(self) -> dict:
        return {
            "text_replaced": self.text_replaced,
            "images_replaced": self.images_replaced,
            "calls": self.calls,
            "skipped": dict(self.skipped),
            "failures": list(self.failures),
            "cancelled": self.cancelled,
        }


class TreeWalker:
    """Walks a document tree and rewrites text and image nodes in place.

    The generation capabilities are injected so the walker can run against
    real services or test fakes alike.

    Attributes:
        budget: The run's shared generation budget.
        rephraser: Async callable turning trimmed text into replacement text.
        resolver: Maps image references to workspace files. Optional when
            image processing is disabled.
        normalizer: Turns an image file into a size-bounded PNG.
        regenerator: Async callable turning PNG bytes into new image bytes.
        document_dir: Directory of the document being walked, used to
            resolve relative image references.
        image_tags: Tag name to source attribute mapping for image elements.
        cancel_event: Optional event that stops the walk once set.
        report: Counts collected while walking.

    Example:
        ```python
        async def shout(text):
            return text.upper()

        root = load_html("<p>  hello  </p>")
        walker = TreeWalker(GenerationBudget(text_limit=1), rephraser=shout)
        await walker.walk(root)
        root.render()  # "<p>  HELLO  </p>"
        ```
    """

    def __init__(
        self,
        budget: GenerationBudget,
        rephraser: Rephraser,
        resolver: Optional[WorkspaceResolver] = None,
        normalizer: Optional[Normalizer] = None,
        regenerator: Optional[Regenerator] = None,
        document_dir: Optional[Path] = None,
        image_tags: Optional[Dict[str, str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.budget = budget
        self.rephraser = rephraser
        self.resolver = resolver
        self.normalizer = normalizer
        self.regenerator = regenerator
        self.document_dir = document_dir
        self.image_tags = image_tags if image_tags is not None else dict(DEFAULT_IMAGE_TAGS)
        self.cancel_event = cancel_event
        self.report = WalkReport()
        self._announced = set()

    def _cancelled(self) -> bool:
        if self.cancel_event is not None and self.cancel_event.is_set():
            if not self.report.cancelled:
                logger.info("Cancellation requested, stopping the walk")
            self.report.cancelled = True
            return True
        return False

    def _skip(self, node: Node, reason: str) -> None:
        self.report.skipped[reason] += 1
        logger.debug(f"Skipped node {node.id}: {reason}")

    def _fail(self, node: Node, reason: str, error: Exception) -> None:
        self.report.skipped[reason] += 1
        self.report.failures.append({"node_id": node.id, "reason": reason, "error": str(error)})
        logger.warning(f"Left node {node.id} unchanged ({reason}): {error}")

    def _reserve(self, node: Node, kind: str) -> bool:
        if self.budget.reserve(kind):
            return True
        if kind not in self._announced:
            self._announced.add(kind)
            logger.info(f"{kind.capitalize()} generation limit reached")
        self._skip(node, "budget")
        return False

    async def walk(self, node: Node) -> WalkReport:
        """Visit `node` and its descendants in document order, rewriting candidates.

        Args:
            node: Usually the document `Root`, but any subtree works.

        Returns:
            The walker's `WalkReport`, accumulated across calls.
        """
        # Explicit stack instead of recursion so deeply nested markup cannot
        # hit the interpreter's recursion limit.
        stack = [(node, False)]
        while stack:
            if self._cancelled():
                break
            current, in_raw_text = stack.pop()

            if isinstance(current, Text):
                if not in_raw_text and not current.is_blank():
                    await self._visit_text(current)
            elif isinstance(current, Element) and current.tag in self.image_tags:
                if current.get(self.image_tags[current.tag]):
                    await self._visit_image(current)

            if isinstance(current, Container):
                raw = in_raw_text or (isinstance(current, Element) and current.tag in RAW_TEXT_ELEMENTS)
                stack.extend((child, raw) for child in reversed(current.children))

        return self.report

    async def _visit_text(self, node: Text) -> None:
        original = node.value
        if not original.strip():
            return
        if not self._reserve(node, TEXT):
            return

        self.report.calls += 1
        try:
            replacement = await self.rephraser(original)
            if not isinstance(replacement, str) or not replacement.strip():
                raise CapabilityError("Rephraser returned no text.")
        except Exception as e:
            self._fail(node, "capability_error", e)
            return

        logger.debug(f"originalText_{node.id}: {original}")
        logger.debug(f"replacementText_{node.id}: {replacement}")
        node.replace_stripped(replacement.strip())
        if node.modified:
            self.report.text_replaced += 1
        else:
            self.report.skipped["unchanged"] += 1

    async def _visit_image(self, node: Element) -> None:
        attribute = self.image_tags[node.tag]
        reference = node.get(attribute)
        if is_external(reference):
            self._skip(node, "external")
            return
        if not self._reserve(node, IMAGE):
            return
        if self.resolver is None or self.normalizer is None or self.regenerator is None:
            self._fail(node, "capability_error", CapabilityError("Image processing is not configured."))
            return

        path = self.resolver.resolve(reference, self.document_dir)
        if path is None:
            self._fail(node, "not_found", AssetNotFound(reference))
            return

        try:
            normalized = self.normalizer(path)
        except Exception as e:
            self._fail(node, "normalization_error", e)
            return

        self.report.calls += 1
        output = png_path_for(path)
        try:
            data = await self.regenerator(normalized.data)
            if not data:
                raise CapabilityError("Regenerator returned no image data.")
            output.write_bytes(data)
        except Exception as e:
            self._fail(node, "capability_error", e)
            return

        logger.info(f"Replacement image saved to {output}")
        node.set_attribute(attribute, png_reference(reference))
        self.report.images_replaced += 1
