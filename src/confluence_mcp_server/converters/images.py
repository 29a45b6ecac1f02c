"""Local image handling for Markdown uploads.

Markdown written next to image files references them by relative path.
Confluence shows images that are attachments of the page, so before an
upload the referenced files are found, uploaded as attachments, and the
references rewritten as ``ac:image`` macros pointing at the attachment.
"""

import html
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

_MARKDOWN_IMAGE_RE = re.compile(
    r"!\[([^\]]*)\]"  # ![alt]
    r"\(\s*([^)\s]+)(?:\s+\"[^\"]*\")?\s*\)"  # (path "title")
)
_IMG_TAG_RE = re.compile(r"<img\b[^>]*?/?>", re.IGNORECASE)
_ATTR_RE = re.compile(r"([\w:-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")


@dataclass
class ImageReference:
    """A local image referenced from Markdown.

    Attributes:
        alt: Alternative text ('' when absent)
        original_path: Path exactly as written in the document
        resolved_path: Absolute path resolved against the document directory
        attributes: ``width`` / ``height`` from ``<img>`` tags, as ints
    """

    alt: str
    original_path: str
    resolved_path: Path
    attributes: dict[str, int] = field(default_factory=dict)


def is_remote(src: str) -> bool:
    return src.lower().startswith(("http://", "https://", "data:"))


def _parse_attributes(tag: str) -> dict[str, str]:
    return {
        match.group(1).lower(): html.unescape(
            match.group(2) if match.group(2) is not None else match.group(3)
        )
        for match in _ATTR_RE.finditer(tag)
    }


def _size_attributes(attrs: dict[str, str]) -> dict[str, int]:
    return {
        name: int(attrs[name])
        for name in ("width", "height")
        if attrs.get(name, "").isdigit()
    }


def extract_image_references(
    markdown: str, base_dir: str | Path
) -> list[ImageReference]:
    """Find local images in ``![alt](path)`` and ``<img src=...>`` form.

    http(s) and data URLs are skipped.  Each path is reported once, in
    order of first appearance.
    """
    base = Path(base_dir)
    found: list[tuple[int, ImageReference]] = []

    for match in _MARKDOWN_IMAGE_RE.finditer(markdown):
        alt, src = match.group(1), match.group(2)
        if is_remote(src):
            continue
        found.append(
            (
                match.start(),
                ImageReference(
                    alt=alt,
                    original_path=src,
                    resolved_path=(base / src).resolve(),
                ),
            )
        )

    for match in _IMG_TAG_RE.finditer(markdown):
        attrs = _parse_attributes(match.group(0))
        src = attrs.get("src", "")
        if not src or is_remote(src):
            continue
        found.append(
            (
                match.start(),
                ImageReference(
                    alt=attrs.get("alt", ""),
                    original_path=src,
                    resolved_path=(base / src).resolve(),
                    attributes=_size_attributes(attrs),
                ),
            )
        )

    seen: set[str] = set()
    references = []
    for _, ref in sorted(found, key=lambda item: item[0]):
        if ref.original_path in seen:
            continue
        seen.add(ref.original_path)
        references.append(ref)
    return references


def image_macro(
    filename: str,
    alt: str = "",
    width: int | str | None = None,
    height: int | str | None = None,
) -> str:
    """Build an ``ac:image`` macro referencing an attachment of the page."""
    attrs = ""
    if alt:
        attrs += f' ac:alt="{html.escape(alt, quote=True)}"'
    if width:
        attrs += f' ac:width="{width}"'
    if height:
        attrs += f' ac:height="{height}"'
    return (
        f"<ac:image{attrs}>"
        f'<ri:attachment ri:filename="{html.escape(filename, quote=True)}" />'
        "</ac:image>"
    )


def attachment_filename(path: str) -> str:
    """Attachment name used for a local image path."""
    return os.path.basename(path.replace("\\", "/"))


def replace_image_tags_with_macros(
    html_text: str, image_map: dict[str, str]
) -> str:
    """Replace ``<img>`` tags whose ``src`` is in *image_map* with macros.

    Args:
        html_text: Rendered HTML or storage markup.
        image_map: Original ``src`` -> attachment filename.

    Width and height are carried over.  Remote and unmapped images are
    left as they are.
    """

    def _replace(match: re.Match) -> str:
        attrs = _parse_attributes(match.group(0))
        src = attrs.get("src", "")
        if is_remote(src) or src not in image_map:
            return match.group(0)
        sizes = _size_attributes(attrs)
        return image_macro(
            image_map[src],
            alt=attrs.get("alt", ""),
            width=sizes.get("width"),
            height=sizes.get("height"),
        )

    return _IMG_TAG_RE.sub(_replace, html_text)
