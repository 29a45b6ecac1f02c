"""Shared pytest fixtures for confluence-mcp-server tests."""

import threading
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from confluence_mcp_server.config import Config
from confluence_mcp_server.core.models import AttachmentInfo, ConfluencePage
from confluence_mcp_server.errors import (
    PageNotFoundError,
    VersionConflictError,
)

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Confluence instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Confluence instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeConfluenceClient:
    """In-memory stand-in for ConfluenceClient.

    Pages and attachments live in dicts; every call is recorded in
    ``calls`` as ``(method, page_id, ...)``.  The optional ``block`` event
    makes remote calls hang until it is set, for timeout tests.
    """

    def __init__(self, config: Config):
        self.config = config
        self.pages: dict[str, ConfluencePage] = {}
        self.attachments: dict[str, dict[str, tuple[AttachmentInfo, bytes]]] = {}
        self.calls: list[tuple] = []
        self.block: threading.Event | None = None
        self._next_id = 1000

    # -- test helpers ------------------------------------------------------

    def add_page(self, page_id, title="Page", body="<p>x</p>", version=1):
        self.pages[page_id] = ConfluencePage(
            id=page_id, title=title, version=version, body=body
        )
        self.attachments.setdefault(page_id, {})

    def add_attachment(self, page_id, title, data, version=1, att_id=None):
        self._next_id += 1
        info = AttachmentInfo(
            id=att_id or f"att{self._next_id}",
            title=title,
            version=version,
            file_size=len(data),
            media_type="application/octet-stream",
        )
        self.attachments.setdefault(page_id, {})[title] = (info, data)

    def remove_attachment(self, page_id, title):
        del self.attachments[page_id][title]

    def calls_to(self, method):
        return [call for call in self.calls if call[0] == method]

    def _wait(self):
        if self.block is not None:
            self.block.wait(5)

    # -- client API --------------------------------------------------------

    def get_page(self, page_id, timeout=10.0):
        self.calls.append(("get_page", page_id))
        self._wait()
        if page_id not in self.pages:
            raise PageNotFoundError(f"page/{page_id}")
        return self.pages[page_id]

    def update_page(
        self, page_id, title, content, version, timeout=10.0, message=None
    ):
        self.calls.append(("update_page", page_id, content, version))
        current = self.pages[page_id]
        if version != current.version:
            raise VersionConflictError(
                f"Version conflict: page/{page_id} was modified", status=409
            )
        updated = ConfluencePage(
            id=page_id, title=title, version=version + 1, body=content
        )
        self.pages[page_id] = updated
        return updated

    def list_attachments(self, page_id, timeout=10.0):
        self.calls.append(("list_attachments", page_id))
        self._wait()
        return [info for info, _ in self.attachments.get(page_id, {}).values()]

    def download_attachment(self, page_id, attachment_id, timeout=10.0):
        self.calls.append(("download_attachment", page_id, attachment_id))
        for info, data in self.attachments.get(page_id, {}).values():
            if info.id == attachment_id:
                return data
        raise PageNotFoundError(f"page/{page_id}/attachment/{attachment_id}")

    def upload_attachment(
        self, page_id, filename, data, content_type, timeout=10.0
    ):
        self.calls.append(("upload_attachment", page_id, filename, content_type))
        existing = self.attachments.setdefault(page_id, {}).get(filename)
        if existing is None:
            self._next_id += 1
            info = AttachmentInfo(
                id=f"att{self._next_id}",
                title=filename,
                version=1,
                file_size=len(data),
                media_type=content_type,
            )
        else:
            info = existing[0].model_copy(
                update={
                    "version": (existing[0].version or 0) + 1,
                    "file_size": len(data),
                }
            )
        self.attachments[page_id][filename] = (info, data)
        return info


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config instance whose cache lives under tmp_path."""
    return Config(
        confluence_url="https://example.atlassian.net",
        email="user@example.com",
        api_token="secret-token",
        insecure=False,
        data_dir=str(tmp_path / "confluence-data"),
    )


@pytest.fixture
def mock_confluence_client(mock_config):
    """Create a mock ConfluenceClient instance for testing."""
    from confluence_mcp_server.core.client import ConfluenceClient

    client = MagicMock(spec=ConfluenceClient)
    client.config = mock_config
    return client


@pytest.fixture
def fake_client(mock_config):
    """In-memory Confluence with page 12345 ("Design", version 3)."""
    client = FakeConfluenceClient(mock_config)
    client.add_page(
        "12345",
        title="Design",
        body="<h1>Design</h1><ul><li><p>one</p></li><li>two</li></ul>",
        version=3,
    )
    return client
