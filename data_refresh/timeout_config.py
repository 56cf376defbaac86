"""
Centralized timeout configuration for all control-plane operations.

This module provides consistent timeout and retry values for Azure SDK calls,
az CLI subprocess calls and deployment polling, so no control-plane call can
hang indefinitely.

Usage:
    from data_refresh.timeout_config import Timeouts

    subprocess.run(cmd, timeout=Timeouts.DEPLOY_SUBMIT)

Environment Variables:
    All values can be overridden via environment variables:
    - REFRESH_TIMEOUT_QUICK: Quick lookups (default: 30s)
    - REFRESH_TIMEOUT_STANDARD: List/query calls (default: 60s)
    - REFRESH_TIMEOUT_DELETE: Database and link deletion (default: 900s)
    - REFRESH_TIMEOUT_DEPLOY_SUBMIT: Deployment submission (default: 300s)
    - REFRESH_RETRY_ATTEMPTS: Attempts for transient failures (default: 3)
    - REFRESH_RETRY_DELAY: Initial backoff in seconds (default: 2)
"""

import logging
import os
from typing import Final, List, Optional, Union

logger = logging.getLogger(__name__)


def _get_timeout(env_var: str, default: int) -> int:
    """Get timeout value from environment variable or use default.

    Args:
        env_var: Environment variable name
        default: Default timeout in seconds

    Returns:
        Timeout value in seconds
    """
    value = os.environ.get(env_var)
    if value is not None:
        try:
            timeout = int(value)
            if timeout <= 0:
                logger.warning(
                    f"Invalid timeout value for {env_var}: {value}. "
                    f"Must be positive. Using default: {default}s"
                )
                return default
            return timeout
        except ValueError:
            logger.warning(
                f"Invalid timeout value for {env_var}: {value}. "
                f"Must be integer. Using default: {default}s"
            )
            return default
    return default


class Timeouts:
    """Centralized timeout constants for control-plane operations.

    Categories:
        - QUICK: Single resource lookups (30s)
        - STANDARD: Resource Graph queries, link listings (60s)
        - DELETE: Database delete / link termination long-running operations (900s)
        - DEPLOY_SUBMIT: az deployment group create --no-wait (300s)

    All values are in seconds and configurable via environment variables.
    """

    QUICK: Final[int] = _get_timeout("REFRESH_TIMEOUT_QUICK", 30)
    GET_DATABASE: Final[int] = QUICK
    SESSION_REFRESH: Final[int] = QUICK

    STANDARD: Final[int] = _get_timeout("REFRESH_TIMEOUT_STANDARD", 60)
    RESOURCE_GRAPH_QUERY: Final[int] = STANDARD
    LIST_LINKS: Final[int] = STANDARD
    DEPLOYMENT_STATUS: Final[int] = STANDARD

    DELETE: Final[int] = _get_timeout("REFRESH_TIMEOUT_DELETE", 900)
    DELETE_DATABASE: Final[int] = DELETE
    DELETE_LINK: Final[int] = DELETE

    DEPLOY_SUBMIT: Final[int] = _get_timeout("REFRESH_TIMEOUT_DEPLOY_SUBMIT", 300)

    RETRY_ATTEMPTS: Final[int] = _get_timeout("REFRESH_RETRY_ATTEMPTS", 3)
    RETRY_DELAY: Final[int] = _get_timeout("REFRESH_RETRY_DELAY", 2)


def log_timeout_event(
    operation: str,
    timeout_value: int,
    command: Optional[Union[str, List[str]]] = None,
    level: str = "warning",
) -> None:
    """Log a timeout event with consistent formatting.

    Args:
        operation: Name of the operation that timed out
        timeout_value: Timeout value that was exceeded
        command: Optional command that timed out
        level: Log level (debug, info, warning, error)
    """
    log_func = getattr(logger, level, logger.warning)
    cmd_str = ""
    if command:
        cmd_str = " ".join(command) if isinstance(command, list) else command
        if len(cmd_str) > 100:
            cmd_str = cmd_str[:97] + "..."
        cmd_str = f" - command: '{cmd_str}'"

    log_func(
        f"Operation '{operation}' timed out after {timeout_value} seconds{cmd_str}"
    )
