"""Define the node tree that a parsed markup document is held in.

This module provides a closed set of node kinds: `Root`, `Element`, `Text`
and `Markup`. Every node remembers the exact slice of source text it was parsed
from, so rendering an untouched tree reproduces the input byte for byte. Only
the parts of a node that are explicitly changed through its API (a text
payload, an attribute value) are re-rendered; everything else is emitted from
the original source.

Each node is assigned a UUID-based identifier so that rewrites can be traced
in logs.

See Also:
    `doc_renew.parser`: Parses markup into a `Root` and serializes it back.
"""

import html
import re
from typing import *
from uuid import uuid4


# Same tokenization as html.parser's tagfind_tolerant and attrfind_tolerant,
# so attributes are found where the parser found them.
_TAG_NAME = re.compile(r"<[a-zA-Z][^\t\n\r\f />\x00]*(?:\s|/(?!>))*")
_ATTRIBUTE = re.compile(
    r"(?P<name>[^\s/>][^\s/=>]*)"
    r"(?:\s*=+\s*(?P<value>'[^']*'|\"[^\"]*\"|(?!['\"])[^>\s]*))?"
    r"(?:\s|/(?!>))*"
)

# One character, or one character reference.
_CHARACTER = re.compile(r"&(?:#[0-9]+;?|#[xX][0-9a-fA-F]+;?|[a-zA-Z][a-zA-Z0-9]*;?)|.", re.DOTALL)


def _find_attribute(start_tag: str, name: str) -> Optional[re.Match]:
    """Return the first attribute token in `start_tag` called `name`, if any."""
    match = _TAG_NAME.match(start_tag)
    if match is None:
        return None
    pos = match.end()
    while pos < len(start_tag):
        attr = _ATTRIBUTE.match(start_tag, pos)
        if attr is None or attr.end() == pos:
            break
        if attr.group("name").lower() == name:
            return attr
        pos = attr.end()
    return None


def _is_blank(chunk: str) -> bool:
    return not html.unescape(chunk).strip()


def _payload_bounds(raw: str) -> Tuple[int, int]:
    """Locate the payload of `raw` between whitespace that may be encoded.

    Leading and trailing characters count as whitespace when they decode to
    whitespace, so `&nbsp;` and `&#160;` at the edges stay outside the span.
    """
    chunks = [match.span() for match in _CHARACTER.finditer(raw)]
    first = 0
    while first < len(chunks) and _is_blank(raw[slice(*chunks[first])]):
        first += 1
    if first == len(chunks):
        return len(raw), len(raw)
    last = len(chunks) - 1
    while _is_blank(raw[slice(*chunks[last])]):
        last -= 1
    return chunks[first][0], chunks[last][1]


class Node():
    """Base class for all document tree nodes.

    Attributes:
        parent: Non-owning back-reference to the containing node, or None for
            the root. Used only for traversal bookkeeping.
        id: A unique identifier for this node.
    """
    parent: Optional["Node"]
    id: str

    def __init__(self, id=None) -> None:
        self.id = id if id else str(uuid4())
        self.parent = None

    @property
    def modified(self) -> bool:
        """Whether this node itself will render differently from its source."""
        return False

    def render(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.render()


class Container(Node):
    """A node that owns an ordered list of children."""
    children: List[Node]

    def __init__(self, children: List[Node] = None, id=None) -> None:
        super().__init__(id=id)
        self.children = []
        for child in children or []:
            self.append(child)

    def append(self, child: Node) -> Node:
        """Append a child and take ownership of it.

        Args:
            child: A node that is not yet owned by another container.

        Returns:
            The appended child, for chaining.

        Raises:
            ValueError: If the child already has a parent.
        """
        if child.parent is not None:
            raise ValueError("Node is already owned by another container.")
        child.parent = self
        self.children.append(child)
        return child

    def iter(self) -> Iterator[Node]:
        """Traverse the subtree depth-first, yielding self then descendants."""
        yield self
        for child in self.children:
            if isinstance(child, Container):
                yield from child.iter()
            else:
                yield child

    def render_children(self) -> str:
        return "".join(child.render() for child in self.children)


class Root(Container):
    """The top of a document tree. Holds the document's top-level nodes."""

    def render(self) -> str:
        """Render the whole document back to markup."""
        return self.render_children()


class Element(Container):
    """A markup element with a tag, attributes and children.

    The element keeps its original start tag and end tag text. Attributes set
    through `set_attribute` are patched into the original start tag in place,
    preserving attribute order, spacing and quote style.

    Attributes:
        tag: Lower-cased tag name.
        attrs: Attribute name to value mapping, in document order. Valueless
            attributes map to an empty string.
        start_raw: The start tag exactly as it appeared in the source.
        end_raw: The end tag as it appeared in the source, or an empty string
            for void, self-closing or implicitly closed elements.

    Example:
        ```python
        img = Element("img", {"src": "a.jpg"}, start_raw='<img src="a.jpg">')
        img.set_attribute("src", "a.png")
        print(img.render())  # <img src="a.png">
        ```
    """
    tag: str
    attrs: Dict[str, str]
    start_raw: str
    end_raw: str

    def __init__(self, tag: str, attrs: Dict[str, str] = None, start_raw: str = None,
                 end_raw: str = "", children: List[Node] = None, id=None) -> None:
        """Initialize a new Element.

        Args:
            tag: The tag name.
            attrs: Optional attribute mapping. Defaults to no attributes.
            start_raw: Optional original start tag text. When not provided a
                start tag is synthesized from `tag` and `attrs`.
            end_raw: Optional original end tag text.
            children: Optional initial children.
            id: Optional identifier. If not provided, a new UUID is generated.
        """
        super().__init__(children=children, id=id)
        self.tag = tag.lower()
        self.attrs = dict(attrs) if attrs else {}
        self.start_raw = start_raw if start_raw is not None else self._synthesize_start_tag()
        self.end_raw = end_raw
        self._dirty: Dict[str, str] = {}

    def _synthesize_start_tag(self) -> str:
        parts = [self.tag]
        for name, value in self.attrs.items():
            parts.append(f'{name}="{html.escape(value, quote=True)}"')
        return "<" + " ".join(parts) + ">"

    def get(self, name: str, default: str = None) -> Optional[str]:
        return self.attrs.get(name.lower(), default)

    def set_attribute(self, name: str, value: str) -> None:
        """Change an attribute value that is already present on the element.

        Args:
            name: Attribute name (case-insensitive).
            value: The new, unescaped attribute value.

        Raises:
            KeyError: If the element does not carry the attribute.
        """
        name = name.lower()
        if name not in self.attrs:
            raise KeyError(f"<{self.tag}> has no '{name}' attribute.")
        if self.attrs[name] == value:
            return
        self.attrs[name] = value
        self._dirty[name] = value

    @property
    def modified(self) -> bool:
        return bool(self._dirty)

    def render_start_tag(self) -> str:
        """Render the start tag, patching in any attributes changed since parsing."""
        start = self.start_raw
        for name, value in self._dirty.items():
            match = _find_attribute(start, name)
            if match is None:
                raise ValueError(f"Attribute '{name}' not found in start tag {start!r}.")
            old = match.group("value")
            # Unquoted values are rewritten double-quoted; html.escape covers both quote chars.
            quote = old[0] if old and old[0] in ("'", '"') else '"'
            new = quote + html.escape(value, quote=True) + quote
            if old is None:
                # Valueless attribute, e.g. `<img src>`.
                at = match.end("name")
                start = start[:at] + "=" + new + start[at:]
            else:
                start = start[:match.start("value")] + new + start[match.end("value"):]
        return start

    def render(self) -> str:
        return self.render_start_tag() + self.render_children() + self.end_raw


class Text(Node):
    """A run of character data, including its surrounding whitespace.

    Attributes:
        raw: The payload as markup, with character references left encoded.
            This is what gets rendered.
        source: The payload as it appeared in the source.

    Example:
        ```python
        text = Text("  Hello world  \\n")
        text.replace_stripped("Greetings, world")
        print(repr(text.raw))  # '  Greetings, world  \\n'
        ```
    """
    raw: str
    source: str

    def __init__(self, raw: str, id=None) -> None:
        """Initialize a new Text node.

        Args:
            raw: The character data exactly as it appears in the markup.
            id: Optional identifier. If not provided, a new UUID is generated.
        """
        super().__init__(id=id)
        self.raw = raw
        self.source = raw

    @property
    def stripped(self) -> str:
        """The payload without leading and trailing whitespace, still encoded.

        Whitespace written as a character reference (`&nbsp;`, `&#160;`) is
        trimmed along with literal whitespace.
        """
        lead, end = _payload_bounds(self.raw)
        return self.raw[lead:end]

    @property
    def value(self) -> str:
        """The stripped payload with character references decoded."""
        return html.unescape(self.stripped)

    def is_blank(self) -> bool:
        return not self.stripped

    def replace_stripped(self, value: str) -> None:
        """Substitute `value` for the stripped payload, keeping the outer whitespace.

        The new value is escaped for use as character data and spliced
        between the untouched leading and trailing whitespace. If it decodes
        to the same text as the current payload, the node is left as is.

        Args:
            value: Unescaped replacement text.
        """
        if value.strip() == self.value.strip():
            return
        lead, end = _payload_bounds(self.raw)
        self.raw = self.raw[:lead] + html.escape(value, quote=False) + self.raw[end:]

    @property
    def modified(self) -> bool:
        return self.raw != self.source

    def render(self) -> str:
        return self.raw


class Markup(Node):
    """Verbatim markup that is never rewritten.

    Covers comments, doctype and other declarations, processing instructions
    and stray end tags.

    Attributes:
        raw: The markup exactly as it appeared in the source.
        kind: What the markup is, e.g. `"comment"` or `"decl"`.
    """
    raw: str
    kind: str

    def __init__(self, raw: str, kind: str = "comment", id=None) -> None:
        super().__init__(id=id)
        self.raw = raw
        self.kind = kind

    def render(self) -> str:
        return self.raw
