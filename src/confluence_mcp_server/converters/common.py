"""Common types and utilities for format conversion."""

from dataclasses import dataclass, field

# =============================================================================
# Code Block Language Mapping
# =============================================================================
#
# Bidirectional mapping between Markdown code fence language identifiers and
# the ``language`` parameter of the Confluence code macro.
#
# Markdown:   ```python
# Confluence: <ac:parameter ac:name="language">py</ac:parameter>
#
# - Markdown->Confluence is the canonical direction
# - Confluence->Markdown picks one canonical Markdown name per macro name
# - Unknown languages pass through unchanged
# =============================================================================

_MARKDOWN_TO_CONFLUENCE_MAP: dict[str, str] = {
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "javascript": "js",
    "python": "py",
    "yaml": "yml",
    "c++": "cpp",
    "csharp": "c#",
    "cs": "c#",
    "plaintext": "text",
    "plain": "text",
}

_CONFLUENCE_TO_MARKDOWN_CANONICAL: dict[str, str] = {
    "js": "javascript",
    "py": "python",
    "yml": "yaml",
    "c#": "csharp",
}


def markdown_to_confluence_lang(lang: str) -> str:
    """
    Convert a Markdown code fence language to a code macro language.

    Examples:
        >>> markdown_to_confluence_lang("python")
        'py'
        >>> markdown_to_confluence_lang("go")
        'go'
    """
    return _MARKDOWN_TO_CONFLUENCE_MAP.get(lang.lower(), lang)


def confluence_to_markdown_lang(lang: str) -> str:
    """
    Convert a code macro language to a Markdown code fence language.

    Examples:
        >>> confluence_to_markdown_lang("py")
        'python'
        >>> confluence_to_markdown_lang("bash")
        'bash'
    """
    return _CONFLUENCE_TO_MARKDOWN_CANONICAL.get(lang.lower(), lang)


@dataclass
class ConversionResult:
    """Result of format conversion with metadata and warnings.

    Attributes:
        text: Converted text output
        source_format: Format of input text ('markdown' or 'storage')
        target_format: Format of output text ('markdown' or 'storage')
        converted: True if conversion performed
        warnings: List of warnings about lossy conversions or unsupported features
    """

    text: str
    source_format: str = "unknown"
    target_format: str = "unknown"
    converted: bool = False
    warnings: list[str] = field(default_factory=list)
