"""Parse HTML markup into a lossless node tree and serialize it back.

The parser is built on the standard library `html.parser.HTMLParser`, which
reports a stream of events (start tag, end tag, character data, comment, ...)
but discards the exact source text of most of them. To keep the round trip
lossless, every event is recorded together with its start offset, and each
node is given the source slice running from its own event to the next one.
Rendering an untouched tree is therefore the concatenation of the original
slices, in document order.

Tree construction follows the usual HTML conventions without trying to be a
full HTML5 tree builder:

1. Void elements (`img`, `br`, `meta`, ...) and self-closing tags never take
   children.
2. An end tag closes the nearest open element with the same name, implicitly
   closing anything opened after it.
3. An end tag with no matching open element is kept as verbatim `Markup`.
4. Comments, declarations and processing instructions are kept as verbatim
   `Markup`.

See Also:
    `doc_renew.document`: The node classes produced by parsing.
    `ParseError`, `SerializationError`: Raised on failure.
"""
from html.parser import HTMLParser
from typing import List, Tuple

from doc_renew.document import Root, Element, Text, Markup, Container
from doc_renew.errors import ParseError, SerializationError

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link",
    "meta", "param", "source", "track", "wbr",
})

# Elements whose character data is not prose.
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})


class _EventRecorder(HTMLParser):
    """Collects parser events as (kind, start_offset, payload) tuples."""

    def __init__(self, markup: str) -> None:
        super().__init__(convert_charrefs=True)
        self.events: List[Tuple[str, int, object]] = []
        self._line_starts = [0]
        for i, char in enumerate(markup):
            if char == "\n":
                self._line_starts.append(i + 1)

    def _offset(self) -> int:
        lineno, column = self.getpos()
        return self._line_starts[lineno - 1] + column

    def _record(self, kind: str, payload=None) -> None:
        self.events.append((kind, self._offset(), payload))

    def handle_starttag(self, tag, attrs):
        self._record("starttag", (tag, attrs))

    def handle_startendtag(self, tag, attrs):
        self._record("startendtag", (tag, attrs))

    def handle_endtag(self, tag):
        self._record("endtag", tag)

    def handle_data(self, data):
        self._record("data")

    def handle_comment(self, data):
        self._record("comment")

    def handle_decl(self, decl):
        self._record("decl")

    def handle_pi(self, data):
        self._record("pi")

    def unknown_decl(self, data):
        self._record("decl")


def _attr_dict(attrs) -> dict:
    # HTML keeps the first occurrence of a duplicated attribute.
    result = {}
    for name, value in attrs:
        if name not in result:
            result[name] = value if value is not None else ""
    return result


def load_html(markup: str) -> Root:
    """Parse an HTML string into a `Root` node tree.

    The returned tree renders back to exactly `markup` until one of its nodes
    is modified.

    Args:
        markup: The full document text.

    Returns:
        The root of the parsed document tree.

    Raises:
        ParseError: If the parser fails, or the tree it produced would not
            render back to the input.

    Example:
        ```python
        root = load_html('<p>Hello <b>world</b></p><img src="a.jpg">')
        print([type(n).__name__ for n in root.children])  # ['Element', 'Element']
        assert root.render() == '<p>Hello <b>world</b></p><img src="a.jpg">'
        ```
    """
    recorder = _EventRecorder(markup)
    try:
        recorder.feed(markup)
        recorder.close()
    except Exception as e:
        raise ParseError(f"Could not parse markup: {e}") from e

    events = recorder.events
    if not events or events[0][1] > 0:
        # Leading bytes the parser did not report are kept as character data.
        events.insert(0, ("data", 0, None))

    root = Root()
    stack: List[Container] = [root]
    previous_kind = None

    for index, (kind, start, payload) in enumerate(events):
        end = events[index + 1][1] if index + 1 < len(events) else len(markup)
        raw = markup[start:end]
        parent = stack[-1]

        if kind in ("starttag", "startendtag"):
            tag, attrs = payload
            element = Element(tag, _attr_dict(attrs), start_raw=raw)
            parent.append(element)
            if kind == "starttag" and tag not in VOID_ELEMENTS:
                stack.append(element)

        elif kind == "endtag":
            depth = _find_open(stack, payload)
            if depth is None:
                parent.append(Markup(raw, kind="endtag"))
            else:
                element = stack[depth]
                element.end_raw = raw
                del stack[depth:]

        elif kind == "data":
            last = parent.children[-1] if parent.children else None
            if previous_kind == "data" and isinstance(last, Text):
                last.raw += raw
                last.source += raw
            else:
                parent.append(Text(raw))

        else:
            parent.append(Markup(raw, kind=kind))

        previous_kind = kind

    if root.render() != markup:
        raise ParseError("Parsed tree does not reproduce the source markup.")
    return root


def _find_open(stack: List[Container], tag: str):
    """Return the stack index of the innermost open element named `tag`, if any."""
    for depth in range(len(stack) - 1, 0, -1):
        if stack[depth].tag == tag:
            return depth
    return None


def serialize(root: Root) -> str:
    """Render a document tree back to markup.

    Untouched nodes are emitted from their original source text; only
    modified text payloads and attribute values are re-rendered.

    Args:
        root: The document tree.

    Returns:
        The document text.

    Raises:
        SerializationError: If any node cannot be rendered.
    """
    try:
        text = root.render()
    except Exception as e:
        raise SerializationError(f"Could not render document tree: {e}") from e
    if not isinstance(text, str):
        raise SerializationError("Document tree rendered to a non-string value.")
    return text

