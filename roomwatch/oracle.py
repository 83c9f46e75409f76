"""Client for the text-classification endpoint and verdict parsing."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import OracleError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

_MATCHING_RE = re.compile(r"\s*Matching:\s*(\d{1,3})%\s*$")


@dataclass(slots=True)
class Verdict:
    """Match score (0-100, optional) and the free-text assessment."""

    assessment: str
    score: Optional[int] = None


def parse_verdict(reply: str) -> Verdict:
    """Split a trailing ``Matching: NN%`` token off *reply*.

    Without the token, or with a value above 100, the whole reply is the
    assessment and there is no score.
    """

    text = reply.strip()
    match = _MATCHING_RE.search(text)
    if match:
        score = int(match.group(1))
        if score <= 100:
            return Verdict(assessment=text[: match.start()].strip(), score=score)
        logger.debug("Ignoring out-of-range matching score %s", score)
    return Verdict(assessment=text)


class ClassificationOracle(Protocol):
    def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class ChatCompletionOracle:
    """OpenAI-compatible ``/chat/completions`` client."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.model = model
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def _post(self, payload: dict) -> dict:
        resp = self._client.post("/chat/completions", json=payload)
        resp.raise_for_status()
        return resp.json()

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        data = self._post(payload)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise OracleError(f"Unexpected completion payload: {data!r}") from exc
        logger.info("Classification result: %s", content)
        return content or ""

    def close(self) -> None:
        self._client.close()


__all__ = [
    "Verdict",
    "parse_verdict",
    "ClassificationOracle",
    "ChatCompletionOracle",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL",
]
