"""
Unified logging utilities for lfm_curator.

Entrypoints call configure_logging() once at startup. Library modules only
use logging.getLogger(__name__). Log output goes to stderr so command output
on stdout (including --json) stays machine-readable.
"""
import inspect
import logging
import os
import re
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, List, Optional

_logging_configured = False
_run_id: Optional[str] = None
_HANDLER_TAG = "_lfm_handler"
_CONSOLE_FMT = '%(asctime)s | %(levelname)-5s | %(name)s | %(message)s'
_CONSOLE_FMT_WITH_RUN_ID = '%(asctime)s | %(levelname)-5s | %(name)s | run_id=%(run_id)s | %(message)s'
_FILE_FMT = '%(asctime)s | %(levelname)-5s | %(name)s | %(funcName)s:%(lineno)d | run_id=%(run_id)s | %(message)s'

_NOISY_LOGGERS = ('urllib3', 'requests')


class RunIdFilter(logging.Filter):
    """Inject run_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id or "-"
        return True


def set_run_id(run_id: Optional[str]) -> None:
    global _run_id
    _run_id = run_id


def configure_logging(
    level: str = 'WARNING',
    log_file: Optional[str] = None,
    file_level: str = 'DEBUG',
    force: bool = False,
    run_id: Optional[str] = None,
    console: bool = True,
    show_run_id: bool = False,
) -> None:
    """
    Configure logging for the whole application.

    Subsequent calls are ignored unless force=True.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to a log file
        file_level: Log level for file output
        force: Reconfigure even if already configured
        run_id: Optional run identifier injected into log records
        console: Whether to add a stderr handler
        show_run_id: Include run_id in console lines

    Environment variable overrides:
        LOG_LEVEL: Override the level parameter
        LOG_FILE: Override the log_file parameter
    """
    global _logging_configured

    if run_id:
        set_run_id(run_id)

    if _logging_configured and not force:
        return

    level = os.getenv('LOG_LEVEL', level).upper()
    if log_file is None:
        log_file = os.getenv('LOG_FILE')

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Only remove handlers we installed ourselves (pytest's caplog etc. stay)
    for handler in root.handlers[:]:
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, level, logging.WARNING))
        console_handler.setFormatter(logging.Formatter(
            _CONSOLE_FMT_WITH_RUN_ID if (show_run_id or level == 'DEBUG') else _CONSOLE_FMT,
            datefmt='%H:%M:%S',
        ))
        console_handler.addFilter(RunIdFilter())
        setattr(console_handler, _HANDLER_TAG, True)
        root.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(getattr(logging, file_level.upper(), logging.DEBUG))
        file_handler.setFormatter(logging.Formatter(_FILE_FMT, datefmt='%Y-%m-%d %H:%M:%S'))
        file_handler.addFilter(RunIdFilter())
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _logging_configured = True
    logging.getLogger(__name__).debug(
        f"Logging configured: level={level}, file={log_file or 'none'}, run_id={_run_id or '-'}"
    )


@contextmanager
def stage_timer(stage_name: str, logger: Optional[logging.Logger] = None):
    """
    Time a block and log its duration at INFO.

    Usage:
        with stage_timer("Similar artist lookups"):
            results = engine.recommend(...)
    """
    if logger is None:
        frame = inspect.currentframe()
        caller = frame.f_back.f_back if frame and frame.f_back else None
        module = caller.f_globals.get('__name__', __name__) if caller else __name__
        logger = logging.getLogger(module)

    logger.debug(f"{stage_name} starting...")
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if elapsed < 1:
            logger.info(f"{stage_name} completed in {elapsed * 1000:.0f}ms")
        elif elapsed < 60:
            logger.info(f"{stage_name} completed in {elapsed:.1f}s")
        else:
            minutes, seconds = divmod(elapsed, 60)
            logger.info(f"{stage_name} completed in {int(minutes)}m {seconds:.0f}s")


_DEFAULT_REDACTIONS = [
    (r'(["\']?(?:api[_-]?key|token|secret|password|sk)["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)(["\']?)',
     r'\1***REDACTED***\3'),
    (r'/home/[^/]+', r'/home/***'),
    (r'/Users/[^/]+', r'/Users/***'),
    (r'C:\\Users\\[^\\]+', r'C:\\Users\\***'),
]


def redact(value: Any, keys: Optional[List[str]] = None) -> str:
    """
    Redact credentials and home directories before logging.

    Args:
        value: Value to redact (string, path, or dict)
        keys: Extra dict keys whose values should be hidden

    Returns:
        Redacted string representation
    """
    if value is None:
        return "None"

    text = str(value)
    for pattern, replacement in _DEFAULT_REDACTIONS:
        text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)

    for key in keys or []:
        text = re.sub(
            rf'(["\']?{re.escape(key)}["\']?\s*[:=]\s*["\']?)([^"\'\s,}}]+)(["\']?)',
            r'\1***REDACTED***\3',
            text,
            flags=re.IGNORECASE,
        )
    return text


def add_logging_args(parser) -> None:
    """Add standard logging CLI arguments to an argparse parser."""
    group = parser.add_argument_group('logging')
    group.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='WARNING',
        help='Set logging level (default: WARNING)',
    )
    group.add_argument('--debug', action='store_true',
                       help='Enable debug logging (shortcut for --log-level DEBUG)')
    group.add_argument('--verbose', '-v', action='store_true',
                       help='Show progress logging (shortcut for --log-level INFO)')
    group.add_argument('--log-file', type=str, metavar='PATH', help='Write logs to file')


def resolve_log_level(args) -> str:
    """
    Resolve log level from parsed arguments.

    Priority: --debug > --verbose > --log-level
    """
    if getattr(args, 'debug', False):
        return 'DEBUG'
    if getattr(args, 'verbose', False):
        return 'INFO'
    return getattr(args, 'log_level', 'WARNING')
