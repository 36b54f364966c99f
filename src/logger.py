"""Structured logging configuration using loguru.

Two sinks are installed at startup:
- a colourised, human-readable console sink on stderr
- a rotating JSON-lines file sink, one object per record

Recoverable crawl failures are logged with ``key``, ``stage`` and ``url``
keyword arguments. The JSON sink lifts those listing fields (and ``plate``)
to the top level of each object, so a coverage gap can be traced back to its
listing with a plain filter on the file; everything else bound to the record
ends up under ``context``.
"""

import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from src.exceptions import LoggingInitializationError

LISTING_FIELDS = ("key", "stage", "url", "plate")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> | {extra}"
)


def _to_json(record: dict[str, Any]) -> str:
    """Render a loguru record as one JSON object."""
    extra = dict(record["extra"])
    extra.pop("serialized", None)

    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": extra.pop("module", record["name"]),
        "function": record["function"],
        "line": record["line"],
    }
    for field in LISTING_FIELDS:
        if field in extra:
            entry[field] = extra.pop(field)

    exception = record["exception"]
    if exception is not None and exception.type is not None:
        entry["exception"] = {
            "type": exception.type.__name__,
            "value": str(exception.value),
        }

    if extra:
        entry["context"] = extra

    return json.dumps(entry, default=str, ensure_ascii=False)


def _json_format(record: dict[str, Any]) -> str:
    # loguru treats the returned string as a template, so the rendered JSON
    # is stashed in extra and referenced instead of returned directly.
    record["extra"]["serialized"] = _to_json(record)
    return "{extra[serialized]}\n"


def _validate_log_directory(log_dir: Path) -> None:
    """Create ``log_dir`` and prove it is writable.

    Raises:
        LoggingInitializationError: If the directory cannot be created or
            written to.
    """
    probe = log_dir / ".write_test"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        probe.write_text("ok")
        probe.unlink()
    except PermissionError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir), reason=f"Permission denied: {exc}"
        ) from exc
    except OSError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir), reason=f"OS error during directory validation: {exc}"
        ) from exc


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Install the console and JSON file sinks.

    Must be called once during bootstrap, before the crawl starts.

    Raises:
        LoggingInitializationError: If the log directory is unusable.
    """
    config = config or get_config()

    logger.remove()
    _validate_log_directory(config.log_dir)

    # Records logged through the bare logger have no module binding.
    logger.configure(extra={"module": "autospread"})

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )
    logger.add(
        str(config.log_dir / "autospread_{time:YYYY-MM-DD}.json"),
        format=_json_format,
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        encoding="utf-8",
    )

    logger.info(
        "Logging infrastructure initialized",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Return the shared logger bound with the module name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.warning("Registry lookup failed", key="3", stage="registry")
    """
    return logger.bind(module=name)
