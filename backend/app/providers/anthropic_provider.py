"""Claude-backed generation provider.

Direct anthropic.AsyncAnthropic call. Claude 529 overloads are retried with
exponential backoff; every other failure surfaces immediately as a
ProviderFailureError so the job is marked FAILED with the raw message. The
overall time budget is enforced by the orchestrator, not here.
"""

from typing import Any

import anthropic
import structlog
from anthropic._exceptions import OverloadedError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import get_settings
from app.core.exceptions import MalformedProviderResponseError, ProviderFailureError
from app.providers.generation import GenerationRequest, build_prompt

logger = structlog.get_logger(__name__)


@retry(
    retry=retry_if_exception_type(OverloadedError),
    stop=stop_after_attempt(4),
    wait=wait_exponential(multiplier=2, min=2, max=30),
    reraise=True,
    before_sleep=lambda rs: logger.warning(
        "claude_overloaded_retrying",
        attempt=rs.attempt_number,
        sleep_seconds=rs.next_action.sleep,
    ),
)
async def _create_with_retry(client: Any, **kwargs: Any) -> Any:
    """messages.create() with retry on Claude 529 overload only."""
    return await client.messages.create(**kwargs)


class AnthropicGenerationProvider:
    name = "anthropic"

    def __init__(
        self,
        client: Any | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        self.client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = model or settings.generation_model
        self.max_tokens = max_tokens or settings.generation_max_tokens
        self.temperature = settings.generation_temperature if temperature is None else temperature

    async def generate(self, request: GenerationRequest) -> str:
        system, messages = build_prompt(request)
        try:
            response = await _create_with_retry(
                self.client,
                model=self.model,
                system=system,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except anthropic.APIError as exc:
            logger.warning(
                "generation_provider_error", provider=self.name, error=str(exc), error_type=type(exc).__name__
            )
            raise ProviderFailureError(f"Generation provider error: {exc}") from exc

        texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        if not texts:
            raise MalformedProviderResponseError("Malformed provider response: no text content returned")

        if getattr(response, "stop_reason", None) == "max_tokens":
            logger.warning("generation_truncated", provider=self.name, max_tokens=self.max_tokens)
            raise MalformedProviderResponseError(
                f"Malformed provider response: output truncated at {self.max_tokens} tokens"
            )

        return "".join(texts)
