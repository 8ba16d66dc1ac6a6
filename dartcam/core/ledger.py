"""
Scoring ledger client.

Forwards detection results to the game service that keeps the score. The
ledger is optional: without a URL results only reach in-process listeners.
"""
import logging
from typing import List, Optional, Sequence

import httpx

from dartcam.core.scoring import DetectionResult

logger = logging.getLogger(__name__)


class LedgerNotifier:
    """Posts detection results to `{base_url}/api/boards/{board_id}/dart-detected`."""

    def __init__(
        self,
        base_url: str,
        board_id: str = "default",
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.board_id = board_id
        self.timeout = timeout
        self._http_client = http_client
        self.sent = 0
        self.failed = 0

    @property
    def url(self) -> str:
        return f"{self.base_url}/api/boards/{self.board_id}/dart-detected"

    async def notify(self, results: Sequence[DetectionResult]) -> bool:
        """
        Send an ordered list of results. Failures are logged, not raised.

        Returns:
            True if the ledger accepted the results.
        """
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)

        payload: List[dict] = [r.to_dict() for r in results]
        try:
            response = await self._http_client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            self.failed += 1
            logger.error(f"[LEDGER] Failed to notify scoring ledger: {e}")
            return False

        if response.status_code >= 300:
            self.failed += 1
            logger.warning(f"[LEDGER] Scoring ledger returned {response.status_code}: {response.text}")
            return False

        self.sent += 1
        summary = ", ".join(f"{r.ring.value} {r.score}" for r in results)
        logger.info(f"[LEDGER] Sent to scoring ledger: {summary}")
        return True

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
