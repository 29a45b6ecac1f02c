"""Confluence storage format to Markdown conversion using html.parser."""

import html
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser

from .common import ConversionResult, confluence_to_markdown_lang

_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_WS_RE = re.compile(r"\s+")

VOID_TAGS = frozenset(
    {"br", "hr", "img", "col", "input", "meta", "link", "wbr"}
)

BLOCK_TAGS = frozenset(
    {
        "p",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "ul",
        "ol",
        "li",
        "table",
        "blockquote",
        "pre",
        "hr",
        "div",
        "ac:structured-macro",
        "ac:layout",
        "ac:layout-section",
        "ac:layout-cell",
    }
)

# Wrappers rendered as their children without a warning
_TRANSPARENT_TAGS = frozenset(
    {
        "span",
        "div",
        "thead",
        "tbody",
        "tfoot",
        "colgroup",
        "col",
        "u",
        "sup",
        "sub",
        "small",
        "ac:layout",
        "ac:layout-section",
        "ac:layout-cell",
        "ac:rich-text-body",
        "ac:link-body",
        "ac:plain-text-link-body",
    }
)


@dataclass
class Node:
    """Element of the parsed storage tree; text children are plain str."""

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list = field(default_factory=list)

    def find(self, tag: str) -> "Node | None":
        for child in self.children:
            if isinstance(child, Node):
                if child.tag == tag:
                    return child
                found = child.find(tag)
                if found is not None:
                    return found
        return None

    def text(self) -> str:
        parts = []
        for child in self.children:
            parts.append(child if isinstance(child, str) else child.text())
        return "".join(parts)


class _TreeBuilder(HTMLParser):
    """Builds a ``Node`` tree, tolerating unclosed and stray end tags."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.root = Node("#root")
        self._stack = [self.root]

    def handle_starttag(self, tag, attrs):
        node = Node(tag, {name: value or "" for name, value in attrs})
        self._stack[-1].children.append(node)
        if tag not in VOID_TAGS:
            self._stack.append(node)

    def handle_startendtag(self, tag, attrs):
        self._stack[-1].children.append(
            Node(tag, {name: value or "" for name, value in attrs})
        )

    def handle_endtag(self, tag):
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].tag == tag:
                del self._stack[index:]
                return

    def handle_data(self, data):
        self._stack[-1].children.append(data)


class StorageParser:
    """Converter from storage-format XHTML to Markdown.

    Best-effort: unknown Confluence macros become HTML comments naming the
    macro, and unknown elements are rendered as their text.  Each kind of
    lossy conversion adds one warning.
    """

    def __init__(self):
        self.warnings: list[str] = []

    def _warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def parse(self, storage: str) -> ConversionResult:
        self.warnings = []
        # CDATA is handed to the parser as escaped text
        prepared = _CDATA_RE.sub(lambda m: html.escape(m.group(1)), storage)
        builder = _TreeBuilder()
        builder.feed(prepared)
        builder.close()

        text = self._blocks(builder.root.children)
        text = re.sub(r"\n{3,}", "\n\n", text).strip()
        return ConversionResult(
            text=text,
            source_format="storage",
            target_format="markdown",
            converted=True,
            warnings=self.warnings,
        )

    # ------------------------------------------------------------------
    # Block level
    # ------------------------------------------------------------------

    def _blocks(self, children: list) -> str:
        """Render a mixed list of block and inline children."""
        out: list[str] = []
        inline: list = []

        def flush():
            if inline:
                text = self._inline(inline).strip()
                if text:
                    out.append(text + "\n\n")
                inline.clear()

        for child in children:
            if isinstance(child, Node) and child.tag in BLOCK_TAGS:
                flush()
                out.append(self._block(child))
            else:
                inline.append(child)
        flush()
        return "".join(out)

    def _block(self, node: Node) -> str:
        tag = node.tag
        if tag == "p":
            text = self._inline(node.children).strip()
            return f"{text}\n\n" if text else ""
        if re.fullmatch(r"h[1-6]", tag):
            level = int(tag[1])
            return f"{'#' * level} {self._inline(node.children).strip()}\n\n"
        if tag == "hr":
            return "---\n\n"
        if tag in ("ul", "ol"):
            return self._list(node, depth=0) + "\n"
        if tag == "table":
            return self._table(node)
        if tag == "blockquote":
            inner = self._blocks(node.children).strip()
            quoted = "\n".join(
                f"> {line}" if line else ">" for line in inner.split("\n")
            )
            return f"{quoted}\n\n"
        if tag == "pre":
            return self._fence(node.text(), "")
        if tag == "ac:structured-macro":
            return self._macro(node)
        return self._blocks(node.children)

    def _fence(self, code: str, lang: str) -> str:
        fence = "```"
        while fence in code:
            fence += "`"
        return f"{fence}{lang}\n{code.rstrip(chr(10))}\n{fence}\n\n"

    def _macro(self, node: Node) -> str:
        name = node.attrs.get("ac:name", "unknown")
        if name in ("code", "noformat"):
            lang = ""
            for child in node.children:
                if (
                    isinstance(child, Node)
                    and child.tag == "ac:parameter"
                    and child.attrs.get("ac:name") == "language"
                ):
                    lang = confluence_to_markdown_lang(child.text().strip())
            body = node.find("ac:plain-text-body")
            return self._fence(body.text() if body else "", lang)

        self._warn(
            "Confluence macros converted to HTML comments (not functional in Markdown)"
        )
        comment = f"<!-- Confluence Macro: {name} -->\n\n"
        rich = node.find("ac:rich-text-body")
        if rich is not None:
            return comment + self._blocks(rich.children)
        return comment

    def _list(self, node: Node, depth: int) -> str:
        ordered = node.tag == "ol"
        indent = "   " * depth if ordered else "  " * depth
        lines: list[str] = []
        number = 0
        for item in node.children:
            if not isinstance(item, Node) or item.tag != "li":
                continue
            number += 1
            marker = f"{number}." if ordered else "-"
            inline = []
            nested: list[str] = []
            for child in item.children:
                if isinstance(child, Node) and child.tag in ("ul", "ol"):
                    nested.append(self._list(child, depth + 1))
                elif isinstance(child, Node) and child.tag == "p":
                    inline.extend(child.children)
                    inline.append(" ")
                else:
                    inline.append(child)
            text = self._inline(inline).strip()
            lines.append(f"{indent}{marker} {text}\n")
            lines.extend(nested)
        return "".join(lines)

    def _table(self, node: Node) -> str:
        rows: list[list[str]] = []
        header_first = False

        def collect(parent: Node):
            nonlocal header_first
            for child in parent.children:
                if not isinstance(child, Node):
                    continue
                if child.tag == "tr":
                    cells = [
                        c
                        for c in child.children
                        if isinstance(c, Node) and c.tag in ("td", "th")
                    ]
                    if not rows and cells and all(c.tag == "th" for c in cells):
                        header_first = True
                    rows.append(
                        [
                            self._inline(c.children).strip().replace("|", "\\|")
                            for c in cells
                        ]
                    )
                elif child.tag in ("thead", "tbody", "tfoot"):
                    collect(child)

        collect(node)
        if not rows:
            return ""
        if not header_first:
            self._warn("Table without header row: first row used as header")

        width = max(len(row) for row in rows)
        rows = [row + [""] * (width - len(row)) for row in rows]
        lines = [
            "| " + " | ".join(rows[0]) + " |",
            "|" + "|".join(["---"] * width) + "|",
        ]
        lines += ["| " + " | ".join(row) + " |" for row in rows[1:]]
        return "\n".join(lines) + "\n\n"

    # ------------------------------------------------------------------
    # Inline level
    # ------------------------------------------------------------------

    def _inline(self, children: list) -> str:
        parts: list[str] = []
        for child in children:
            if isinstance(child, str):
                parts.append(_WS_RE.sub(" ", child))
            else:
                parts.append(self._inline_node(child))
        return "".join(parts)

    def _inline_node(self, node: Node) -> str:
        tag = node.tag
        inner = self._inline(node.children)
        match tag:
            case "strong" | "b":
                return f"**{inner.strip()}**" if inner.strip() else ""
            case "em" | "i":
                return f"*{inner.strip()}*" if inner.strip() else ""
            case "del" | "s":
                return f"~~{inner.strip()}~~" if inner.strip() else ""
            case "code":
                return f"`{node.text()}`"
            case "br":
                return "  \n"
            case "a":
                href = node.attrs.get("href", "")
                return f"[{inner.strip() or href}]({href})" if href else inner
            case "img":
                return f"![{node.attrs.get('alt', '')}]({node.attrs.get('src', '')})"
            case "ac:image":
                return self._image(node)
            case "ac:link":
                return self._link(node)
            case "ac:structured-macro":
                return self._macro(node).strip()
            case "ac:emoticon":
                return f":{node.attrs.get('ac:name', '')}:"
            case _ if tag in _TRANSPARENT_TAGS:
                return inner
            case _:
                self._warn(f"Unsupported element <{tag}> rendered as plain text")
                return inner

    def _image(self, node: Node) -> str:
        alt = node.attrs.get("ac:alt", "")
        attachment = node.find("ri:attachment")
        if attachment is not None:
            return f"![{alt}]({attachment.attrs.get('ri:filename', '')})"
        url = node.find("ri:url")
        if url is not None:
            return f"![{alt}]({url.attrs.get('ri:value', '')})"
        self._warn("Image without attachment or URL dropped")
        return ""

    def _link(self, node: Node) -> str:
        page = node.find("ri:page")
        body = node.find("ac:link-body") or node.find("ac:plain-text-link-body")
        title = page.attrs.get("ri:content-title", "") if page else ""
        label = (body.text() if body else "").strip() or title
        self._warn("Confluence page links converted to plain text")
        return label


def storage_to_markdown(storage: str) -> ConversionResult:
    """
    Convert Confluence storage format to Markdown.

    Args:
        storage: Storage-format XHTML (compact or expanded)

    Returns:
        ConversionResult with Markdown text and warnings about lossy conversions
    """
    return StorageParser().parse(storage)
