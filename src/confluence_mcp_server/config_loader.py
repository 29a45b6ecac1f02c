"""
YAML config discovery and loading.

Config files are looked up in a fixed set of places, loaded with support
for ``!include`` and ``${VAR}`` references, and merged so that the most
specific file (project over user) decides each top-level section.

Usage:
    from confluence_mcp_server.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Iterator

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CONFLUENCE_MCP_CONFIG"
CONFIG_DIR_NAME = ".confluence_mcp"
USER_CONFIG_DIR_NAME = "confluence_mcp"

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Substitute ``${NAME}`` and ``${NAME:-fallback}`` in *value*.

    An unset or empty variable yields the fallback, or ``""`` without one.
    Text such as ``${`` without a closing brace is kept as is.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m.group(1)) or m.group(2) or "", value
    )


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(item) for key, item in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with an ``!include`` tag.

    Registered on this subclass only, so plain ``yaml.safe_load`` keeps
    rejecting the tag.  ``include_chain`` holds the files currently being
    loaded, outermost first.
    """

    include_chain: list[Path]

    def construct_include(self, node: yaml.ScalarNode) -> Any:
        target = Path(self.construct_scalar(node))
        source = Path(self.name).resolve()
        if not target.is_absolute():
            target = source.parent / target
        target = target.resolve()

        if target in self.include_chain:
            cycle = [*self.include_chain, target]
            raise ValueError(
                "Circular include detected: "
                + " -> ".join(str(p) for p in cycle)
            )
        if not target.exists():
            raise FileNotFoundError(
                f"Include file not found: {target} (referenced from {source})"
            )
        return _load_yaml_with_includes(
            target, _include_stack=[*self.include_chain, target]
        )


ConfigLoader.add_constructor("!include", ConfigLoader.construct_include)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse one YAML file, following its ``!include`` tags."""
    path = path.resolve()
    with path.open(encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = _include_stack or [path]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _candidate_paths() -> Iterator[Path]:
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        yield Path(explicit).expanduser().resolve()
    project_dir = Path.cwd() / CONFIG_DIR_NAME
    yield project_dir / "config.yml"
    yield project_dir / "config.yaml"
    yield Path.home() / ".config" / USER_CONFIG_DIR_NAME / "config.yml"


def discover_config_files() -> list[Path]:
    """Existing config files, most specific first.

    Looks at ``$CONFLUENCE_MCP_CONFIG``, then ``.confluence_mcp/config.yml``
    and ``.confluence_mcp/config.yaml`` under the working directory, then
    ``~/.config/confluence_mcp/config.yml``.
    """
    return [path for path in _candidate_paths() if path.exists()]


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# confluence-mcp-server configuration
#
# Environment variables override anything set here:
#   CONFLUENCE_URL, CONFLUENCE_EMAIL, CONFLUENCE_API_TOKEN, CONFLUENCE_INSECURE
#
# confluence:
#   url: https://example.atlassian.net
#   email: you@example.com
#   api_token: ${CONFLUENCE_API_TOKEN}
#   insecure: false
#   max_parallel_requests: 5
#
# sync:
#   data_dir: confluence-data
#   timeout_seconds: 10
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """The config file in effect, or where a new project file would go.

    Nothing is created; see ``ensure_config()``.
    """
    found = discover_config_files()
    return found[0] if found else Path.cwd() / CONFIG_DIR_NAME / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to write the starter file. Defaults to
            ``resolve_config_path()``.
    """
    found = discover_config_files()
    if found:
        logger.debug("Using existing config file %s", found[0])
        return found[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Wrote starter config to %s", path)
    return path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one dict.

    Files are applied from least to most specific, and a top-level key in
    a more specific file replaces the whole section.  ``${VAR}`` references
    are resolved on the merged result.  No files means ``{}``.
    """
    merged: dict[str, Any] = {}
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using built-in defaults")
        return merged

    for path in reversed(paths):
        logger.debug("Reading config file %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Could not load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Ignoring config file %s: top level is %s, not a mapping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
