"""Providing an AI-driven content renewal toolkit for HTML documents.

Utilities for parsing markup into a lossless node tree, rephrasing its visible
text and regenerating its images under a per-run budget, and writing the
result back without disturbing untouched markup.
"""

from doc_renew.budget import GenerationBudget
from doc_renew.config import RenewConfig
from doc_renew.document import Root, Element, Text, Markup
from doc_renew.errors import (
    RenewError, AssetNotFound, CapabilityError, NormalizationError, ParseError, SerializationError,
)
from doc_renew.images import normalize_image, NormalizedImage
from doc_renew.parser import load_html, serialize
from doc_renew.pipeline import DocumentPipeline, RunSummary, discover_documents, renew_documents
from doc_renew.resolver import WorkspaceResolver
from doc_renew.walker import TreeWalker, WalkReport

__all__ = [
    "GenerationBudget",
    "RenewConfig",
    "Root",
    "Element",
    "Text",
    "Markup",
    "RenewError",
    "AssetNotFound",
    "CapabilityError",
    "NormalizationError",
    "ParseError",
    "SerializationError",
    "normalize_image",
    "NormalizedImage",
    "load_html",
    "serialize",
    "DocumentPipeline",
    "RunSummary",
    "discover_documents",
    "renew_documents",
    "WorkspaceResolver",
    "TreeWalker",
    "WalkReport",
]
