"""HTTP fetcher for indirect items' ciphertext."""

from dataclasses import dataclass

import requests
import structlog

from consent_broker.errors import UnavailableError

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FetchedContent:
    content: bytes
    content_type: str


class ContentFetcher:
    """Fetch the ciphertext behind an indirect item's reference.

    The bytes are relayed as-is; nothing here decrypts them.
    """

    def __init__(self, timeout=10, session=None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, url):
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            log.warning("content.fetch_failed", url=url, error=str(exc))
            raise UnavailableError(f"Failed to fetch file: {exc}") from exc

        return FetchedContent(
            content=response.content,
            content_type=response.headers.get("Content-Type", "application/octet-stream"),
        )
