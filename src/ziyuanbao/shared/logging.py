"""
Logging Module - Rich console logging for CLI runs and the API server.
======================================================================

Batch jobs report their progress here, so server logs double as the
operator's running transcript of long crawls and imports. Lines emitted
while a job runs carry a "[job N]" prefix (see get_job_logger).

Handlers are installed once; configure_logging() re-installs them from
Settings when the CLI or server starts.
"""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, MutableMapping, Optional

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from ziyuanbao.shared.config import Settings

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "requests",
    "sqlalchemy.engine",
    "google_genai",
    "uvicorn.access",
)

_logging_configured = False
_console = Console()


def _build_handlers(
    numeric_level: int,
    use_rich: bool,
    log_file: Optional[str],
    log_format: str,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if use_rich:
        console_handler: logging.Handler = RichHandler(
            console=_console,
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            # Scraped titles contain [tags] that Rich would read as markup
            markup=False,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
    return handlers


def setup_logging(
    level: str = "INFO",
    use_rich: bool = True,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Install root handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_rich: Rich console handler instead of a plain stream handler
        log_file: Optional path of a log file (parent directories are created)
        log_format: Format for the plain and file handlers
        force: Replace handlers installed by an earlier call

    Note:
        Without force, only the first call has an effect.
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    for handler in _build_handlers(numeric_level, use_rich, log_file, log_format or DEFAULT_FORMAT):
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True
    logging.getLogger(__name__).debug(
        f"Logging configured: level={level}, rich={use_rich}, file={log_file}"
    )


def configure_logging(settings: "Settings") -> None:
    """Re-install handlers from the logging section of Settings."""
    logging_config = settings.logging
    setup_logging(
        level=settings.get_effective_log_level(),
        use_rich=logging_config.rich_console,
        log_file=logging_config.file or None,
        log_format=logging_config.format,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a named logger, installing default handlers on first use.

    Args:
        name: Logger name (typically __name__ of the calling module)
    """
    if not _logging_configured:
        setup_logging()

    return logging.getLogger(name)


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the id of the job being run."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[job {self.extra['job_id']}] {msg}", kwargs


def get_job_logger(name: str, job_id: int) -> JobLogAdapter:
    """
    Logger for one batch job run.

    Example:
        >>> get_job_logger(__name__, 7).info("started")   # "[job 7] started"
    """
    return JobLogAdapter(get_logger(name), {"job_id": job_id})
