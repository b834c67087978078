from __future__ import annotations

import dataclasses
import time
from typing import Callable

from deployforge.config.types import NetworkSettings, RetryPolicy
from deployforge.log import get_logger

from .probe import ConnectivityProbe

log = get_logger("network.gate")


class NetworkGate:
    """
    Blocks until the network answers, or gives up.

    Each outer attempt calls the probe once. With `require_stable`, a success is
    only accepted after `stability_probes` further consecutive successes spaced
    `stability_interval_s` apart; a failure inside that window ends the attempt
    and the outer loop moves on to its next retry.
    """

    def __init__(
        self,
        probe: Callable[[], bool],
        settings: NetworkSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.probe = probe
        self.settings = settings or NetworkSettings()
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: NetworkSettings) -> NetworkGate:
        probe = ConnectivityProbe(settings.probe_url, settings.probe_timeout_s)
        return cls(probe, settings)

    def wait_for_stability(
        self,
        max_retries: int | None = None,
        delay_s: float | None = None,
        require_stable: bool = False,
    ) -> bool:
        policy = self._policy(max_retries, delay_s)

        for attempt in range(1, policy.max_attempts + 1):
            if self.probe():
                if not require_stable:
                    log.debug(f"Network reachable on attempt {attempt}")
                    return True
                if self._stable():
                    log.info(f"Network stable on attempt {attempt}")
                    return True
                log.warning(f"Network dropped during stability check (attempt {attempt}/{policy.max_attempts})")
            else:
                log.info(f"Network not reachable (attempt {attempt}/{policy.max_attempts})")

            if attempt < policy.max_attempts:
                self.sleep(policy.delay_for(attempt))

        log.error(f"Network unavailable after {policy.max_attempts} attempts")
        return False

    def _stable(self) -> bool:
        for _ in range(self.settings.stability_probes):
            self.sleep(self.settings.stability_interval_s)
            if not self.probe():
                return False
        return True

    def _policy(self, max_retries: int | None, delay_s: float | None) -> RetryPolicy:
        policy = self.settings.retry
        if max_retries is not None:
            policy = dataclasses.replace(policy, max_attempts=max_retries)
        if delay_s is not None:
            policy = dataclasses.replace(policy, delay_s=delay_s)
        return policy
