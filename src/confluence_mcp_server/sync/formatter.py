"""Reversible pretty-printing for Confluence storage format.

``expand()`` makes a page body readable on disk by putting block-level
elements on their own lines, indented by nesting depth.  ``collapse()``
removes exactly that whitespace again before the body is uploaded, so for
any body the server hands out::

    collapse(expand(body)) == body

How it works:

* The markup is split into tokens: tags, comments and CDATA sections.
  Comments, CDATA, ``<!...>`` and ``<?...?>`` are opaque and never touched.
  Quoted attribute values may contain ``>``.
* Every pair of adjacent tokens forms a *boundary*.  ``RULES`` is an
  ordered table of named rules; the first rule matching the two tags at a
  boundary owns it and decides the whitespace (``"\\n"`` plus two spaces
  per level).  Which rule owns a boundary depends only on the tags, never
  on the text between them, so both directions agree.
* ``expand()`` fills owned boundaries that are empty.  ``collapse()`` clears
  owned boundaries whose content is exactly the rule's whitespace.
* If the input already has whitespace at an owned boundary, the inverse
  would be ambiguous and ``expand()`` returns the input unchanged.  The
  same happens if the expanded text fails to collapse back to its input.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

INDENT = "  "

CONTAINER_TAGS = frozenset(
    {
        "table",
        "colgroup",
        "thead",
        "tbody",
        "tfoot",
        "tr",
        "td",
        "th",
        "ul",
        "ol",
        "li",
        "blockquote",
        "div",
        "ac:layout",
        "ac:layout-section",
        "ac:layout-cell",
    }
)

BLOCK_TAGS = CONTAINER_TAGS | {
    "p",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "hr",
    "pre",
    "col",
}

_TOKEN_RE = re.compile(
    r"<!\[CDATA\[.*?\]\]>"
    r"|<!--.*?-->"
    r"|<[^<>\"']*(?:(?:\"[^\"]*\"|'[^']*')[^<>\"']*)*>",
    re.DOTALL,
)
_TAG_RE = re.compile(r"^<(/?)([A-Za-z][\w:.-]*)")


@dataclass(frozen=True)
class Token:
    """A tag, comment or CDATA section located in the markup."""

    start: int
    end: int
    kind: str  # "open", "close", "void" or "opaque"
    name: str = ""

    @property
    def is_container(self) -> bool:
        return self.name in CONTAINER_TAGS

    @property
    def is_block(self) -> bool:
        return self.name in BLOCK_TAGS

    @property
    def starts_block(self) -> bool:
        return self.kind in ("open", "void") and self.is_block

    @property
    def ends_block(self) -> bool:
        return self.kind in ("close", "void") and self.is_block


@dataclass(frozen=True)
class BoundaryRule:
    """A named rewrite rule for the gap between two adjacent tags.

    Attributes:
        name: Rule identifier, used in debug logs.
        matches: Predicate over the (left, right) tokens.
        depth_offset: Added to the nesting depth after the left token to
            get the indentation level.
    """

    name: str
    matches: Callable[[Token, Token], bool]
    depth_offset: int = 0

    def whitespace(self, depth: int) -> str:
        return "\n" + INDENT * max(0, depth + self.depth_offset)


RULES: tuple[BoundaryRule, ...] = (
    BoundaryRule(
        "container-open",
        lambda left, right: left.kind == "open"
        and left.is_container
        and right.starts_block,
    ),
    BoundaryRule(
        "container-close",
        lambda left, right: left.ends_block
        and right.kind == "close"
        and right.is_container,
        depth_offset=-1,
    ),
    BoundaryRule(
        "block-sibling",
        lambda left, right: left.ends_block and right.starts_block,
    ),
)


def tokenize(markup: str) -> list[Token]:
    """Locate every tag, comment and CDATA section in *markup*."""
    tokens = []
    for match in _TOKEN_RE.finditer(markup):
        text = match.group(0)
        tag = _TAG_RE.match(text)
        if tag is None:
            tokens.append(Token(match.start(), match.end(), "opaque"))
            continue
        if tag.group(1):
            kind = "close"
        elif text.endswith("/>"):
            kind = "void"
        else:
            kind = "open"
        tokens.append(
            Token(match.start(), match.end(), kind, tag.group(2).lower())
        )
    return tokens


def _plan(tokens: list[Token]) -> dict[int, tuple[BoundaryRule, str]]:
    """Map boundary index -> (owning rule, whitespace) for *tokens*.

    Boundary ``i`` sits between ``tokens[i]`` and ``tokens[i + 1]``.
    """
    plan: dict[int, tuple[BoundaryRule, str]] = {}
    depth = 0
    for i, token in enumerate(tokens):
        if token.is_container:
            if token.kind == "open":
                depth += 1
            elif token.kind == "close":
                depth = max(0, depth - 1)
        if i + 1 == len(tokens):
            break
        right = tokens[i + 1]
        if token.kind == "opaque" or right.kind == "opaque":
            continue
        for rule in RULES:
            if rule.matches(token, right):
                plan[i] = (rule, rule.whitespace(depth))
                break
    return plan


def _gaps(markup: str, tokens: list[Token]) -> list[str]:
    return [
        markup[left.end : right.start]
        for left, right in zip(tokens, tokens[1:])
    ]


def _join(markup: str, tokens: list[Token], gaps: list[str]) -> str:
    if not tokens:
        return markup
    parts = [markup[: tokens[0].start]]
    for i, token in enumerate(tokens):
        parts.append(markup[token.start : token.end])
        if i < len(gaps):
            parts.append(gaps[i])
    parts.append(markup[tokens[-1].end :])
    return "".join(parts)


def expand(markup: str) -> str:
    """Insert newline and indentation whitespace between block-level tags.

    Text content, attributes and element order are never altered.  Returns
    *markup* unchanged when it already carries whitespace at a boundary
    the rules own.
    """
    tokens = tokenize(markup)
    plan = _plan(tokens)
    gaps = _gaps(markup, tokens)

    for index, (rule, _) in plan.items():
        if gaps[index] and gaps[index].isspace():
            logger.debug(
                "expand: whitespace already present at %s boundary "
                "(offset %d), leaving markup unchanged",
                rule.name,
                tokens[index].end,
            )
            return markup

    for rule in RULES:
        for index, (owner, whitespace) in plan.items():
            if owner is rule and not gaps[index]:
                gaps[index] = whitespace

    expanded = _join(markup, tokens, gaps)
    if collapse(expanded) != markup:
        logger.debug("expand: result does not collapse back, leaving markup unchanged")
        return markup
    return expanded


def collapse(formatted: str) -> str:
    """Remove the whitespace ``expand()`` inserted.

    Only gaps that match their rule's whitespace exactly are cleared, so
    edits made to the formatted text survive.
    """
    tokens = tokenize(formatted)
    plan = _plan(tokens)
    gaps = _gaps(formatted, tokens)

    for rule in reversed(RULES):
        for index, (owner, whitespace) in plan.items():
            if owner is rule and gaps[index] == whitespace:
                gaps[index] = ""

    return _join(formatted, tokens, gaps)
