"""Markdown to Confluence storage format conversion using mistune rendering."""

import html

import mistune

from .common import ConversionResult, markdown_to_confluence_lang
from .images import attachment_filename, image_macro, is_remote


def _cdata(text: str) -> str:
    """Wrap *text* in CDATA, splitting any embedded terminator."""
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


class StorageRenderer(mistune.HTMLRenderer):
    """HTML renderer that emits Confluence storage format (XHTML).

    Standard elements come out as XHTML.  Code blocks become the ``code``
    macro, and local images become ``ac:image`` macros that reference an
    attachment of the same name.
    """

    def __init__(self):
        # Raw HTML passes through so <img> tags can be rewritten afterwards
        super().__init__(escape=False)
        self.attachment_images: list[str] = []
        self.code_blocks = 0

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced or indented code block as the code macro.

        Storage format:
        <ac:structured-macro ac:name="code">
          <ac:parameter ac:name="language">py</ac:parameter>
          <ac:plain-text-body><![CDATA[...]]></ac:plain-text-body>
        </ac:structured-macro>
        """
        self.code_blocks += 1
        params = ""
        if info and info.strip():
            lang = markdown_to_confluence_lang(info.split()[0])
            params = (
                '<ac:parameter ac:name="language">'
                f"{html.escape(lang)}</ac:parameter>"
            )
        body = _cdata(code.rstrip("\n"))
        return (
            '<ac:structured-macro ac:name="code">'
            f"{params}<ac:plain-text-body>{body}</ac:plain-text-body>"
            "</ac:structured-macro>\n"
        )

    def image(self, text: str, url: str, title: str | None = None) -> str:
        """Render an image.

        Remote images use ``ri:url``; local paths become attachment
        references named after the file.
        """
        if is_remote(url):
            return (
                f'<ac:image ac:alt="{html.escape(text, quote=True)}">'
                f'<ri:url ri:value="{html.escape(url, quote=True)}" />'
                "</ac:image>"
            )
        filename = attachment_filename(url)
        self.attachment_images.append(filename)
        return image_macro(filename, alt=text)


def convert_with_warnings(markdown_text: str) -> ConversionResult:
    """
    Convert Markdown to storage format and report lossy spots.

    Args:
        markdown_text: Markdown formatted text

    Returns:
        ConversionResult with storage-format text and warnings
    """
    renderer = StorageRenderer()
    markdown = mistune.create_markdown(
        renderer=renderer, plugins=["table", "strikethrough"]
    )
    result: str = markdown(markdown_text)  # type: ignore[assignment]

    warnings: list[str] = []
    if renderer.attachment_images:
        names = ", ".join(sorted(set(renderer.attachment_images)))
        warnings.append(
            f"Local images reference page attachments that must exist: {names}"
        )
    if "<img" in result.lower():
        warnings.append(
            "Raw <img> tags passed through; map them with "
            "replace_image_tags_with_macros() before uploading"
        )

    return ConversionResult(
        text=result.strip(),
        source_format="markdown",
        target_format="storage",
        converted=True,
        warnings=warnings,
    )


def markdown_to_storage(markdown_text: str) -> str:
    """
    Convert Markdown text to Confluence storage format.

    Args:
        markdown_text: Markdown formatted text

    Returns:
        Storage-format XHTML
    """
    return convert_with_warnings(markdown_text).text
