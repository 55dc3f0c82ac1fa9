"""Anthropic client used for card generation, with request pacing and usage tracking."""

import logging
import time
from collections import deque
from dataclasses import dataclass

import anthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import settings

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60

TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


@dataclass
class TokenUsage:
    """Running totals across every completed request."""

    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    def record(self, input_tokens: int, output_tokens: int) -> None:
        self.requests += 1
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    @property
    def cost_usd(self) -> float:
        per_token_in = settings.llm_input_price_per_million / 1_000_000
        per_token_out = settings.llm_output_price_per_million / 1_000_000
        return self.input_tokens * per_token_in + self.output_tokens * per_token_out


class LLMClient:
    """Single-turn wrapper over the Anthropic Messages API.

    At most ``anthropic_rate_limit_rpm`` requests are sent in any rolling
    minute; further calls block until a slot frees up. Connection errors,
    rate-limit responses and server errors are retried with exponential
    backoff before the last error is re-raised.
    """

    def __init__(self) -> None:
        self.client = anthropic.Anthropic(api_key=settings.anthropic_api_key, max_retries=0)
        self.model = settings.anthropic_model
        self.requests_per_minute = settings.anthropic_rate_limit_rpm
        self.usage = TokenUsage()
        self._sent_at: deque[float] = deque()

    def _wait_for_slot(self) -> None:
        now = time.monotonic()
        while self._sent_at and now - self._sent_at[0] > RATE_WINDOW_SECONDS:
            self._sent_at.popleft()
        if len(self._sent_at) >= self.requests_per_minute:
            delay = RATE_WINDOW_SECONDS - (now - self._sent_at[0])
            if delay > 0:
                logger.info("Request pacing: waiting %.1fs for a free slot", delay)
                time.sleep(delay)
        self._sent_at.append(time.monotonic())

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.anthropic_max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def create_message(
        self,
        prompt: str,
        system: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> str:
        """Send one user prompt and return the concatenated text of the reply."""
        self._wait_for_slot()
        request: dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        response = self.client.messages.create(**request)
        self.usage.record(response.usage.input_tokens, response.usage.output_tokens)
        logger.debug(
            "Request %d used %d input / %d output tokens",
            self.usage.requests,
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        if response.stop_reason == "max_tokens":
            logger.warning("Reply hit the %d token limit and may be truncated", max_tokens)
        return "".join(block.text for block in response.content if block.type == "text")

    def get_cost_estimate(self) -> dict[str, float]:
        """Return request and token counts with the estimated cost in USD."""
        return {
            "requests": self.usage.requests,
            "input_tokens": self.usage.input_tokens,
            "output_tokens": self.usage.output_tokens,
            "estimated_cost_usd": round(self.usage.cost_usd, 4),
        }


# Created lazily so importing the app never requires an API key.
_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Return the shared LLMClient, creating it on first call."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
