"""Exception types raised while renewing documents.

Node-local failures (`AssetNotFound`, `CapabilityError`, `NormalizationError`)
are contained by the tree walker: the offending node is left untouched and the
walk continues. Document-local failures (`ParseError`, `SerializationError`)
abort only the document being processed.

See Also:
    `doc_renew.walker.TreeWalker`: Where node-local failures are contained.
    `doc_renew.pipeline.renew_documents`: Where document-local failures are contained.
"""


class RenewError(Exception):
    """Base class for all doc_renew errors."""
    pass


class AssetNotFound(RenewError):
    """Raised when an image reference does not match any file in the workspace."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"No file in the workspace matches '{reference}'")
        self.reference = reference


class CapabilityError(RenewError):
    """Raised when a rephrase or image variation call fails.

    Covers network failures, quota errors, timeouts and malformed responses
    from the external generation services.
    """
    pass


class NormalizationError(RenewError):
    """Raised when an image cannot be decoded or shrunk under the size ceiling."""
    pass


class ParseError(RenewError):
    """Raised when markup cannot be parsed into a document tree."""
    pass


class SerializationError(RenewError):
    """Raised when a document tree cannot be rendered back to text."""
    pass
