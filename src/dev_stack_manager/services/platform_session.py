"""Open an authenticated platform session once the platform is up."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from dev_stack_manager.core.exceptions import ServiceUnavailableError
from dev_stack_manager.integrations.platform.client import PlatformClient
from dev_stack_manager.integrations.platform.config import (
    PlatformConnectionConfig,
    PlatformCredentials,
)
from dev_stack_manager.utils.polling import SleepFn, poll_until

if TYPE_CHECKING:
    from dev_stack_manager.core.config.models import StackConfig

logger = structlog.get_logger()

PLATFORM_WAIT_TIMEOUT = 60
PLATFORM_WAIT_INTERVAL = 2


def admin_credentials(config: StackConfig) -> PlatformCredentials:
    """Credentials of the built-in local admin."""
    return PlatformCredentials(username=config.platform_user, password=config.platform_password)


def create_client(config: StackConfig) -> PlatformClient:
    """Create an unauthenticated client for the configured platform URL."""
    return PlatformClient(PlatformConnectionConfig(base_url=config.platform_base_url))


def wait_for_platform(
    client: PlatformClient,
    timeout: float = PLATFORM_WAIT_TIMEOUT,
    interval: float = PLATFORM_WAIT_INTERVAL,
    sleep: SleepFn = time.sleep,
) -> bool:
    """Poll ``GET /`` until the platform answers without an error status."""
    logger.info("waiting_for_platform", url=client.connection_config.base_url, timeout=timeout)

    def _accessible() -> bool:
        status = client.probe("/")
        return status is not None and status < 400

    return poll_until(_accessible, timeout, interval, sleep=sleep, description="platform")


def open_session(
    config: StackConfig,
    credentials: PlatformCredentials | None = None,
    *,
    sleep: SleepFn = time.sleep,
    wait_timeout: float = PLATFORM_WAIT_TIMEOUT,
    init_delay: float | None = None,
) -> PlatformClient:
    """Wait for the platform, let its services settle, and log in.

    Args:
        config: Stack configuration.
        credentials: Login credentials, the local admin by default.
        sleep: Sleep function, injectable for tests.
        wait_timeout: Seconds to wait for the platform to answer.
        init_delay: Seconds to wait after it answers; defaults to
            ``PLATFORM_INIT_DELAY``.

    Returns:
        An authenticated client. The caller closes it.

    Raises:
        ServiceUnavailableError: If the platform never answers.
        PlatformAuthError: If the login is rejected.
    """
    client = create_client(config)
    try:
        if not wait_for_platform(client, timeout=wait_timeout, sleep=sleep):
            raise ServiceUnavailableError("Platform", config.platform_base_url, wait_timeout)
        logger.info("platform_accessible")

        delay = config.platform_init_delay if init_delay is None else init_delay
        if delay > 0:
            logger.info("waiting_for_platform_services", seconds=delay)
            sleep(delay)

        client.login(credentials or admin_credentials(config))
    except BaseException:
        client.close()
        raise
    return client
