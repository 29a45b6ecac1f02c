import json
import logging
import os
import sys

DEFAULT_LOG_FILE = "/tmp/confluence-mcp-server.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
REDACTED = "***MASKED***"

# Values that must never reach a log file (API token, ...)
_secrets: set[str] = set()


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class SecretFilter(logging.Filter):
    """Replace registered secret values in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not _secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in _secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def register_secret(value: str | None) -> None:
    """Redact *value* from every subsequent log message.

    Very short values are ignored; they would mask ordinary words.
    """
    if value and len(value) >= 4:
        _secrets.add(value)


def _build_formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    name = " %(name)s" if with_name else ""
    return logging.Formatter(
        f"[%(asctime)s] [%(levelname)s]{name} %(message)s",
        datefmt=DATE_FORMAT,
    )


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/confluence-mcp-server.log

    Every handler carries a ``SecretFilter``, so values passed to
    ``register_secret()`` never reach the output.
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if mode == "mcp":
        # stdout carries JSON-RPC in MCP mode: file only
        final_log_file = log_file or os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
        handler: logging.Handler = logging.FileHandler(
            final_log_file, mode="a"
        )
        handler.setFormatter(_build_formatter(debug_format, with_name=False))
        handlers.append(handler)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_build_formatter(debug_format, with_name=False))
        handlers.append(handler)
        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(
                _build_formatter(debug_format, with_name=True)
            )
            handlers.append(file_handler)

    for item in handlers:
        item.addFilter(SecretFilter())

    logging.basicConfig(level=log_level, handlers=handlers)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("requests").setLevel(logging.WARNING)
