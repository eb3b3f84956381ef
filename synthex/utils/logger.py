"""
Centralized Logging and Security Filtering
==========================================

This module provides the logging infrastructure for the Synthex client,
with a heavy emphasis on keeping credentials out of the log stream. Session
tokens and passwords travel through almost every layer of the client, so
every handler installed here carries a redaction filter.

Key Features:
-------------
- Sensitive Data Masking: Automatic redaction of passwords, bearer tokens
  and API keys using regex and recursive dictionary filtering.
- API Instrumentation: A decorator for sync and async API methods with
  automatic timing and status tracking, plus request/response helpers.
- Contextual Logging: Timestamps, module origin and line numbers.

Dependencies:
-------------
- logging: Standard library for output routing.
- re: Used for pattern-based masking of sensitive strings.

Author: Synthex Project
"""

import inspect
import json
import logging
import os
import re
import sys
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional


# Log directory: overridable so tests and embedded callers never write into
# the user's home directory.
LOG_DIR = Path(os.environ.get("SYNTHEX_LOG_DIR", Path.home() / ".synthex" / "logs"))
LOG_FILE_NAME = "synthex.log"

# Sensitive field patterns to mask
SENSITIVE_FIELDS = {
    'password', 'passwd', 'pwd', 'secret', 'token', 'api_key',
    'apikey', 'auth', 'authorization', 'credentials', 'cookie'
}

# Regex patterns for sensitive data in strings
SENSITIVE_PATTERNS = [
    (re.compile(r'(Bearer\s+[a-zA-Z0-9\-._~+/]+=*)'), 'Bearer ***'),  # Bearer tokens
    (re.compile(r'(eyJ[a-zA-Z0-9\-_]+\.[a-zA-Z0-9\-_]+\.[a-zA-Z0-9\-_]+)'), '***'),  # JWTs
    (re.compile(r'("password"\s*:\s*")[^"]*(")'), r'\1***\2'),  # Inline JSON passwords
]


class SensitiveDataFilter(logging.Filter):
    """
    Filtering hook to intercept and redact sensitive information.

    Attached to both file and console handlers. It scans log records for
    patterns matching credentials (bearer tokens, JWTs, inline passwords)
    and replaces them with masks before the record is emitted.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Mask sensitive data in the log message."""
        if isinstance(record.msg, str):
            record.msg = _mask_string(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = mask_sensitive_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    mask_sensitive_data(arg) if isinstance(arg, (dict, str)) else arg
                    for arg in record.args
                )

        return True


def _mask_string(text: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_sensitive_data(data: Any, mask_value: str = "***") -> Any:
    """
    Recursively redact sensitive fields from complex data structures.

    Keys that look like credential labels ('password', 'token', ...) are
    replaced. Tokens keep their last 4 characters so two sessions can still
    be told apart in a log; passwords are masked completely.

    Args:
        data: The input data structure (dict, list, str, etc.) to be scrubbed.
        mask_value: The string used to replace sensitive content.

    Returns:
        A copy of the input data with sensitive values masked.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()

            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                if 'key' in key_lower or 'token' in key_lower:
                    if isinstance(value, str) and len(value) > 8:
                        masked[key] = f"{mask_value}{value[-4:]}"
                    else:
                        masked[key] = mask_value
                else:
                    masked[key] = mask_value
            else:
                masked[key] = mask_sensitive_data(value, mask_value)
        return masked

    elif isinstance(data, (list, tuple)):
        masked_list = [mask_sensitive_data(item, mask_value) for item in data]
        return type(data)(masked_list)

    elif isinstance(data, str):
        return _mask_string(data)

    else:
        return data


def setup_logging(
    log_level: int = logging.DEBUG,
    console_level: int = logging.INFO,
    log_format: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> Path:
    """
    Initialize application-wide logging.

    Configs include:
    - Root Logger: Set to DEBUG to capture all client events.
    - File Handler: Persists detailed DEBUG logs to 'synthex.log'.
    - Console Handler: Displays human-readable INFO logs on stderr.

    Args:
        log_level: Granularity for the persistent log file.
        console_level: Granularity for the terminal output.
        log_format: Optional custom formatting string.
        log_dir: Directory for the log file (defaults to LOG_DIR).

    Returns:
        Path: The absolute path to the log file.
    """
    directory = Path(log_dir) if log_dir is not None else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / LOG_FILE_NAME

    if log_format is None:
        log_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )

    formatter = logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers will filter

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    # Single log file that is overwritten on each run
    file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    logging.info("=" * 80)
    logging.info(f"Synthex client started - Log file: {log_file}")
    logging.info("=" * 80)

    return log_file


def shutdown_logging():
    """
    Flush all handlers. Should be called before the process exits.
    """
    logging.info("Shutting down logging system...")
    for handler in logging.root.handlers:
        handler.flush()
    logging.shutdown()


def log_config(config_name: str, config_data: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """
    Log configuration settings with automatic sensitive data masking.

    Args:
        config_name: Name of the configuration being logged
        config_data: Dictionary of configuration settings
        logger: Optional logger instance (uses this module's logger if not provided)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    masked_config = mask_sensitive_data(config_data)

    logger.info(f"Configuration: {config_name}")
    logger.debug(f"{config_name} details: {json.dumps(masked_config, indent=2, default=str)}")


def log_api_call(func: Optional[Callable] = None, *, api_name: str = "API"):
    """
    Decorator for automated instrumentation of API methods.

    Wraps a function (plain or coroutine) to automatically log:
    1. The entry point and sanitized keyword arguments.
    2. The execution status (Success/Failure) upon completion.
    3. Total turnaround time (latency) in seconds.

    Failures are logged at WARNING without a traceback: API failures are
    expected, recoverable events in this client and the exception is always
    re-raised to the caller.

    Args:
        func: The API function to be instrumented.
        api_name: Context label for the log entry (e.g., 'Synthex').
    """
    def decorator(f: Callable) -> Callable:
        def _start(args, kwargs):
            logger = logging.getLogger(f.__module__)
            logger.debug(f"{api_name} call: {f.__qualname__}")
            logger.debug(f"{api_name} {f.__qualname__} - kwargs: {mask_sensitive_data(kwargs)}")
            return logger, time.monotonic()

        def _finish(logger, start_time, error):
            elapsed = time.monotonic() - start_time
            if error is not None:
                logger.warning(f"{api_name} {f.__qualname__} failed: {type(error).__name__}: {error}")
            status = "FAILED" if error is not None else "SUCCESS"
            logger.debug(
                f"{api_name} {f.__qualname__} completed - Status: {status}, "
                f"Duration: {elapsed:.3f}s"
            )

        if inspect.iscoroutinefunction(f):
            @wraps(f)
            async def async_wrapper(*args, **kwargs):
                logger, start_time = _start(args, kwargs)
                error = None
                try:
                    return await f(*args, **kwargs)
                except Exception as e:
                    error = e
                    raise
                finally:
                    _finish(logger, start_time, error)

            return async_wrapper

        @wraps(f)
        def wrapper(*args, **kwargs):
            logger, start_time = _start(args, kwargs)
            error = None
            try:
                return f(*args, **kwargs)
            except Exception as e:
                error = e
                raise
            finally:
                _finish(logger, start_time, error)

        return wrapper

    # Handle both @log_api_call and @log_api_call(api_name="...")
    if func is None:
        return decorator
    else:
        return decorator(func)


def log_api_request(
    logger: logging.Logger,
    method: str,
    endpoint: str,
    headers: Optional[Dict] = None,
    data: Optional[Any] = None,
    params: Optional[Dict] = None
):
    """
    Log an outgoing API request with masked sensitive data.

    Args:
        logger: Logger instance to use
        method: HTTP method (GET, POST, etc.)
        endpoint: API endpoint URL
        headers: Request headers
        data: Request body data
        params: Query parameters
    """
    logger.info(f"API Request: {method} {endpoint}")

    if headers:
        logger.debug(f"Request headers: {mask_sensitive_data(headers)}")

    if params:
        logger.debug(f"Request params: {mask_sensitive_data(params)}")

    if data:
        masked_data = mask_sensitive_data(data)
        logger.debug(f"Request body: {json.dumps(masked_data, indent=2, default=str)}")


def log_api_response(
    logger: logging.Logger,
    status_code: int,
    response_data: Optional[Any] = None,
    elapsed_time: Optional[float] = None
):
    """
    Log an API response with timing information.

    Args:
        logger: Logger instance to use
        status_code: HTTP status code
        response_data: Response body data
        elapsed_time: Request duration in seconds
    """
    timing_info = f" ({elapsed_time:.3f}s)" if elapsed_time else ""
    logger.info(f"API Response: {status_code}{timing_info}")

    if response_data:
        masked_response = mask_sensitive_data(response_data)

        # Truncate large responses for readability
        response_str = json.dumps(masked_response, indent=2, default=str)
        if len(response_str) > 1000:
            response_str = response_str[:1000] + "\n... (truncated)"

        logger.debug(f"Response body: {response_str}")
