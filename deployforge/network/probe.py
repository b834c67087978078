import requests

from deployforge.log import get_logger

log = get_logger("network.probe")


class ConnectivityProbe:
    """Single HEAD request against a known endpoint."""

    def __init__(self, url: str, timeout_s: float = 5.0, session: requests.Session | None = None):
        self.url = url
        self.timeout_s = timeout_s
        self.session = session

    def check(self) -> bool:
        head = self.session.head if self.session is not None else requests.head
        try:
            response = head(self.url, timeout=self.timeout_s, allow_redirects=True)
        except Exception as exc:
            # Any failure here just means "not reachable yet".
            log.debug(f"Probe {self.url} failed: {exc}")
            return False

        if response.status_code >= 400:
            log.debug(f"Probe {self.url} answered HTTP {response.status_code}")
            return False

        return True

    def __call__(self) -> bool:
        return self.check()
