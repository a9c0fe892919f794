"""Map asset references found in documents to files in the workspace.

An `<img src="images/photo.jpg">` reference is matched against every file in
the workspace whose path ends with `images/photo.jpg` (a `**/images/photo.jpg`
glob), skipping dependency and VCS directories. No match is not an error: the
resolver returns None and the caller skips the node.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlsplit

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDES = ("node_modules", ".git", ".hg", ".svn")
EXTERNAL_SCHEMES = ("http", "https", "data", "ftp", "mailto", "blob")


def is_external(reference: str) -> bool:
    """Whether a reference points outside the workspace (a URL or inline data)."""
    reference = reference.strip()
    if reference.startswith("//"):
        return True
    return urlsplit(reference).scheme.lower() in EXTERNAL_SCHEMES


def clean_reference(reference: str) -> str:
    """Strip query, fragment, leading `./` or `/`, and percent-encoding from a reference."""
    path = unquote(urlsplit(reference.strip()).path)
    parts = [part for part in PurePosixPath(path).parts if part not in ("/", ".")]
    return "/".join(parts)


class WorkspaceResolver:
    """Resolves relative asset references to absolute paths under a workspace root.

    When several files match, the choice is deterministic:

    1. The file at the reference's location relative to the referencing
       document's directory, if the caller passes one and it matches.
    2. Otherwise the match with the fewest path components.
    3. Ties broken by lexicographic path order.

    Attributes:
        root: Absolute workspace root.
        excludes: Directory names that are never searched.
    """

    def __init__(self, root: Path, excludes: Iterable[str] = DEFAULT_EXCLUDES) -> None:
        self.root = Path(root).resolve()
        self.excludes = frozenset(excludes)

    def _excluded(self, path: Path) -> bool:
        return any(part in self.excludes for part in path.relative_to(self.root).parts)

    def candidates(self, reference: str) -> List[Path]:
        """Return every workspace file matching `**/<reference>`, sorted by preference."""
        cleaned = clean_reference(reference)
        if not cleaned or ".." in PurePosixPath(cleaned).parts:
            return []
        matches = [
            path.resolve()
            for path in self.root.glob(f"**/{cleaned}")
            if path.is_file() and not self._excluded(path)
        ]
        return sorted(set(matches), key=lambda p: (len(p.parts), str(p)))

    def resolve(self, reference: str, document_dir: Optional[Path] = None) -> Optional[Path]:
        """Find the workspace file an asset reference points to.

        Args:
            reference: The reference as it appears in the document, e.g.
                `"images/photo.jpg"` or `"./photo.jpg?v=2"`.
            document_dir: Optional directory of the referencing document, used
                to prefer a file sitting exactly where the reference says.

        Returns:
            The absolute path of the best match, or None if nothing matches.
        """
        if not reference or is_external(reference):
            return None

        if document_dir is not None:
            local = (Path(document_dir) / unquote(urlsplit(reference.strip()).path).lstrip("/")).resolve()
            if local.is_file() and local.is_relative_to(self.root) and not self._excluded(local):
                return local

        matches = self.candidates(reference)
        if not matches:
            logger.warning(f"File '{reference}' not found in workspace {self.root}")
            return None
        if len(matches) > 1:
            logger.debug(f"'{reference}' matched {len(matches)} files, using {matches[0]}")
        return matches[0]
