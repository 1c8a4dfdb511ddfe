"""Periodic lease renewal for renewable secret stores."""
import asyncio
import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ...errors import RenewalError, SecretStoreError
from .interfaces import SecretStore

RENEWAL_ATTEMPTS = 3
RENEWAL_BACKOFF = 0.1
# Share of the remaining lease allowed to pass before renewing.
LEASE_MARGIN = 2 / 3


class RenewalLoop:
    """Keeps a secret lease alive for the lifetime of the process."""

    def __init__(
        self,
        store: SecretStore,
        interval: float,
        attempts: int = RENEWAL_ATTEMPTS,
        backoff: float = RENEWAL_BACKOFF,
        logger: Optional[logging.Logger] = None,
    ):
        if interval <= 0:
            raise ValueError(f"Renewal interval must be positive, got {interval}")
        self.store = store
        self.interval = interval
        self.attempts = attempts
        self.backoff = backoff
        self.logger = logger or logging.getLogger(__name__)
        self.renewals = 0

    async def start(self) -> None:
        """
        Renew every interval, sooner if the lease would run out first, until
        cancelled.

        Raises:
            RenewalError: After all attempts of one renewal failed
        """
        self.logger.info(f"Starting secret renewal loop (every {self.interval}s)")
        while True:
            await asyncio.sleep(self.delay())
            await self.renew_once()

    def delay(self) -> float:
        """Seconds until the next renewal is due."""
        ttl = self.store.ttl
        if ttl > 0:
            return min(self.interval, ttl * LEASE_MARGIN)
        return self.interval

    async def renew_once(self) -> None:
        """Run a single renewal with constant-backoff retry."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.backoff),
            retry=retry_if_exception_type(SecretStoreError),
            before_sleep=before_sleep_log(self.logger, logging.WARNING),
            reraise=True,
        )
        try:
            await retrying(self.store.renew)
        except SecretStoreError as e:
            self.logger.error(f"Secret renewal failed after {self.attempts} attempts: {e}")
            if isinstance(e, RenewalError):
                raise
            raise RenewalError(str(e)) from e
        self.renewals += 1
