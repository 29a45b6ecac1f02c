"""Format conversion between Markdown and Confluence storage format."""

from .common import (
    ConversionResult,
    confluence_to_markdown_lang,
    markdown_to_confluence_lang,
)
from .images import (
    ImageReference,
    extract_image_references,
    image_macro,
    replace_image_tags_with_macros,
)
from .markdown_to_storage import (
    StorageRenderer,
    convert_with_warnings,
    markdown_to_storage,
)
from .storage_to_markdown import StorageParser, storage_to_markdown

__all__ = [
    "ConversionResult",
    "ImageReference",
    "StorageParser",
    "StorageRenderer",
    "confluence_to_markdown_lang",
    "convert_with_warnings",
    "extract_image_references",
    "image_macro",
    "markdown_to_confluence_lang",
    "markdown_to_storage",
    "replace_image_tags_with_macros",
    "storage_to_markdown",
]
