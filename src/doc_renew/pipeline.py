"""Parse, rewrite and serialize documents, one document at a time.

This module provides `DocumentPipeline`, which turns one document's text into
its renewed text, and `renew_documents`, which runs the pipeline over every
document of a workspace with a single shared `GenerationBudget`.

A document is read once, processed, and written back once as a whole, and only
if it actually changed. Failures are contained at two levels:

1. Node-local failures (missing asset, failed generation call, undecodable
   image) are absorbed by the walker; the node is left as it was.
2. Document-local failures (`ParseError`, `SerializationError`, unreadable
   file) mark that document as failed and the run moves on.

See Also:
    `doc_renew.walker.TreeWalker`: The traversal that rewrites nodes.
    `doc_renew.budget.GenerationBudget`: The per-run quota.
"""
import asyncio
import logging
import time
from functools import partial
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from doc_renew.budget import GenerationBudget
from doc_renew.config import RenewConfig
from doc_renew.errors import ParseError, SerializationError
from doc_renew.images import normalize_file
from doc_renew.parser import load_html, serialize
from doc_renew.regenerator import create_variation
from doc_renew.resolver import WorkspaceResolver
from doc_renew.rewrite import rewrite_text
from doc_renew.walker import (
    DEFAULT_IMAGE_TAGS, Normalizer, Regenerator, Rephraser, TreeWalker, WalkReport,
)

logger = logging.getLogger(__name__)


class DocumentPipeline:
    """Parses a document, walks it with the injected capabilities, and serializes it.

    Attributes:
        rephraser: Async callable producing replacement text.
        resolver: Workspace lookup for image references.
        normalizer: Image to size-bounded PNG conversion.
        regenerator: Async callable producing a new image from PNG bytes.
        image_tags: Tag name to source attribute mapping for image elements.
        cancel_event: Optional event that stops walking once set.
    """

    def __init__(
        self,
        rephraser: Rephraser,
        resolver: Optional[WorkspaceResolver] = None,
        normalizer: Optional[Normalizer] = None,
        regenerator: Optional[Regenerator] = None,
        image_tags: Optional[Dict[str, str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.rephraser = rephraser
        self.resolver = resolver
        self.normalizer = normalizer
        self.regenerator = regenerator
        self.image_tags = image_tags if image_tags is not None else dict(DEFAULT_IMAGE_TAGS)
        self.cancel_event = cancel_event

    @classmethod
    def from_config(cls, config: RenewConfig, workspace: Path,
                    cancel_event: Optional[asyncio.Event] = None) -> "DocumentPipeline":
        """Build a pipeline backed by the OpenAI capabilities described in `config`."""

        async def rephraser(text: str) -> str:
            replacement, elapsed_ms = await rewrite_text(text, max_words=config.max_words, model=config.model)
            logger.debug(f"Rephrased {len(text)} chars in {elapsed_ms:.0f}ms")
            return replacement

        return cls(
            rephraser=rephraser,
            resolver=WorkspaceResolver(workspace, excludes=config.exclude),
            normalizer=normalize_file,
            regenerator=partial(create_variation, model=config.image_model, size=config.image_size),
            image_tags=config.image_tags,
            cancel_event=cancel_event,
        )

    async def process(self, text: str, budget: GenerationBudget,
                      document_dir: Optional[Path] = None) -> tuple[str, WalkReport]:
        """Renew one document's text.

        The returned text differs from `text` only where nodes were rewritten;
        all other markup, attribute order and whitespace is reproduced exactly.

        Args:
            text: The full document text.
            budget: The run's budget. Reservations made here persist in it.
            document_dir: Directory of the document, for resolving relative
                image references.

        Returns:
            A tuple of (renewed_text, walk_report).

        Raises:
            ParseError: If the document cannot be parsed.
            SerializationError: If the rewritten tree cannot be rendered, or an
                untouched tree fails to reproduce its source.
        """
        root = load_html(text)
        walker = TreeWalker(
            budget,
            rephraser=self.rephraser,
            resolver=self.resolver,
            normalizer=self.normalizer,
            regenerator=self.regenerator,
            document_dir=document_dir,
            image_tags=self.image_tags,
            cancel_event=self.cancel_event,
        )
        report = await walker.walk(root)
        output = serialize(root)
        if report.mutated == 0 and output != text:
            raise SerializationError("Serialized document differs from its source although no node changed.")
        return output, report


class RunSummary:
    """What happened during one renewal run.

    Attributes:
        documents: One dict per document with its path, status
            (`"changed"`, `"unchanged"`, `"failed"` or `"not_visited"`) and,
            for failures, the error message.
        totals: Walk counts summed over all documents.
        budget: Budget snapshot taken at the end of the run.
        cancelled: Whether the run was cancelled before finishing.
        elapsed_ms: Wall-clock duration of the run.
    """

    def __init__(self) -> None:
        self.documents: List[dict] = []
        self.totals = WalkReport()
        self.budget: dict = {}
        self.cancelled = False
        self.elapsed_ms = 0.0

    def _count(self, status: str) -> int:
        return sum(1 for doc in self.documents if doc["status"] == status)

    @property
    def processed(self) -> int:
        return sum(1 for doc in self.documents if doc["status"] != "not_visited")

    @property
    def changed(self) -> int:
        return self._count("changed")

    @property
    def failed(self) -> int:
        return self._count("failed")

    def to_dict(self) -> dict:
        return {
            "documents": self.documents,
            "processed": self.processed,
            "changed": self.changed,
            "failed": self.failed,
            "totals": self.totals.to_dict(),
            "budget": self.budget,
            "cancelled": self.cancelled,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


def discover_documents(workspace: Path, include: str = "**/*.html",
                       exclude: Iterable[str] = ("node_modules", ".git")) -> List[Path]:
    """Find candidate documents in a workspace, in a stable order.

    Args:
        workspace: Directory to search.
        include: Glob pattern relative to `workspace`.
        exclude: Directory names whose contents are ignored.

    Returns:
        Sorted list of matching file paths.
    """
    workspace = Path(workspace)
    excluded = set(exclude)
    return sorted(
        path for path in workspace.glob(include)
        if path.is_file() and not excluded.intersection(path.relative_to(workspace).parts)
    )


async def renew_documents(paths: Iterable[Path], pipeline: DocumentPipeline,
                          budget: GenerationBudget) -> RunSummary:
    """Renew each document in turn, writing back the ones that changed.

    The budget is reset at the start and shared by every document of the run.
    Documents are processed in the given order. If the pipeline's cancellation
    event is set, the current document keeps the edits made so far, is still
    written, and the remaining documents are not visited.

    Args:
        paths: Documents to process.
        pipeline: The configured pipeline.
        budget: The run's budget.

    Returns:
        A `RunSummary` of the run.
    """
    summary = RunSummary()
    budget.reset()
    start = time.time()

    for path in paths:
        path = Path(path)
        cancel_event = pipeline.cancel_event
        if cancel_event is not None and cancel_event.is_set():
            summary.cancelled = True
            summary.documents.append({"path": str(path), "status": "not_visited"})
            continue

        try:
            # Bytes in and out so line endings survive untouched.
            text = path.read_bytes().decode("utf-8")
            output, report = await pipeline.process(text, budget, document_dir=path.parent)
            if output != text:
                path.write_bytes(output.encode("utf-8"))
                status = "changed"
            else:
                status = "unchanged"
        except (ParseError, SerializationError, OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to renew {path}: {e}")
            summary.documents.append({"path": str(path), "status": "failed", "error": str(e)})
            continue

        summary.totals.merge(report)
        summary.documents.append({"path": str(path), "status": status, **report.to_dict()})
        if report.cancelled:
            summary.cancelled = True
        logger.info(f"{path}: {status} ({report.text_replaced} text, {report.images_replaced} images)")

    summary.budget = budget.snapshot()
    summary.elapsed_ms = (time.time() - start) * 1000
    return summary
