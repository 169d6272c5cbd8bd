"""
Model Gateway: pluggable anomaly classifier behind a narrow interface.

`(feature text) -> confidence in [0, 1]`. Running without a configured model
is a supported mode: the scorer then uses its local rules only.
"""

from typing import Optional, Protocol

import httpx

from riskwatch.errors import ProviderUnavailable
from riskwatch.services.resilience import CircuitBreaker


class AnomalyModel(Protocol):
    async def classify(self, text: str) -> float:
        ...


def _first_score(body) -> float:
    """
    Pull the top confidence out of a text-classification response.

    Accepts [{label, score}, ...] and the nested [[{label, score}, ...]] form.
    """
    if isinstance(body, list) and body:
        first = body[0]
        if isinstance(first, list) and first:
            first = first[0]
        if isinstance(first, dict) and "score" in first:
            return float(first["score"])
    if isinstance(body, dict) and "score" in body:
        return float(body["score"])
    raise ValueError("response carries no classification score")


class HttpAnomalyModel:
    """Text-classification inference endpoint (Hugging Face compatible)."""

    def __init__(
        self,
        url: str,
        api_token: str = "",
        timeout: float = 5.0,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_token = api_token
        self.timeout = timeout
        self._breaker = breaker or CircuitBreaker(name="anomaly_model", failure_threshold=3, recovery_timeout=60.0)
        self._transport = transport

    async def classify(self, text: str) -> float:
        """Confidence for `text`. Raises ProviderUnavailable on any failure."""
        try:
            score = await self._breaker.call(self._post, text)
        except Exception as e:
            raise ProviderUnavailable("anomaly_model", str(e)) from e
        return min(max(score, 0.0), 1.0)

    async def _post(self, text: str) -> float:
        headers = {"content-type": "application/json"}
        if self.api_token:
            headers["authorization"] = f"Bearer {self.api_token}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.url, json={"inputs": text}, headers=headers)
            response.raise_for_status()
            return _first_score(response.json())
