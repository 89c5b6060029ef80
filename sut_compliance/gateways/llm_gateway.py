"""
LLM Gateway with LiteLLM Integration.

Thin async chat-completion client used by the rule-extraction oracle.
Provider failures are mapped onto the gateway error hierarchy so the
oracle can tell a bad credential (fatal) from a transient failure.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import litellm
from litellm import acompletion

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.gateways.base import (
    GatewayError,
    MalformedResponseError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    with_retry,
)
from sut_compliance.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class LLMRequest:
    """A system + user prompt pair."""

    user_prompt: str
    system_prompt: Optional[str] = None
    temperature: float = 0.0
    max_tokens: Optional[int] = None
    json_mode: bool = False

    def to_messages(self) -> list[dict[str, str]]:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": self.user_prompt})
        return messages


@dataclass
class LLMResponse:
    """Response from LLM completion."""

    content: str
    model: str
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0

    def parse_json(self) -> Any:
        """Parse response content as JSON, tolerating a fenced code block."""
        content = strip_code_fence(self.content)
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Failed to parse LLM response as JSON: {e}", original_error=e)


def strip_code_fence(content: str) -> str:
    """Remove a surrounding ```json ... ``` (or bare ```) fence."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


class LLMGateway:
    """
    LLM gateway over LiteLLM.

    Example:
        >>> gateway = LLMGateway()
        >>> response = await gateway.complete(LLMRequest("Merhaba"))
    """

    def __init__(self, settings: Optional[ComplianceSettings] = None):
        self._settings = settings or get_compliance_settings()

    @property
    def model(self) -> str:
        return self._settings.LLM_MODEL

    @with_retry(max_attempts=3, delay=1.0)
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """
        Run one chat completion.

        Raises:
            ProviderAuthenticationError: Credential rejected
            ProviderRateLimitError: Rate limited after retries
            ProviderTimeoutError: Timed out after retries
            GatewayError: Any other provider failure
        """
        settings = self._settings
        kwargs: dict[str, Any] = {
            "model": settings.LLM_MODEL,
            "messages": request.to_messages(),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens or settings.LLM_MAX_TOKENS,
            "timeout": settings.LLM_TIMEOUT_SECONDS,
        }
        if settings.LLM_API_KEY:
            kwargs["api_key"] = settings.LLM_API_KEY
        if settings.LLM_API_BASE:
            kwargs["api_base"] = settings.LLM_API_BASE
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        started = time.time()
        logger.info(f"LLM request: model={settings.LLM_MODEL}, api_base={settings.LLM_API_BASE or 'default'}")
        try:
            response = await acompletion(**kwargs)
        except litellm.AuthenticationError as e:
            raise ProviderAuthenticationError(
                f"Authentication failed: {e}", provider=settings.LLM_MODEL, original_error=e
            )
        except litellm.RateLimitError as e:
            raise ProviderRateLimitError(
                f"Rate limit exceeded: {e}", provider=settings.LLM_MODEL, original_error=e
            )
        except litellm.Timeout as e:
            raise ProviderTimeoutError(
                f"LLM request timed out: {e}", provider=settings.LLM_MODEL, original_error=e
            )
        except (litellm.APIConnectionError, litellm.ServiceUnavailableError) as e:
            raise ProviderUnavailableError(
                f"LLM provider unavailable: {e}", provider=settings.LLM_MODEL, original_error=e
            )
        except Exception as e:
            error_str = str(e).lower()
            if "unauthorized" in error_str or "401" in error_str or "invalid api key" in error_str:
                raise ProviderAuthenticationError(
                    f"Authentication failed: {e}", provider=settings.LLM_MODEL, original_error=e
                )
            raise GatewayError(f"LLM request failed: {e}", provider=settings.LLM_MODEL, original_error=e)

        latency_ms = (time.time() - started) * 1000
        logger.debug(f"LLM response received in {latency_ms:.0f} ms")

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(response, "model", settings.LLM_MODEL),
            finish_reason=choice.finish_reason or "stop",
            usage={
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
            latency_ms=latency_ms,
        )


# Singleton instance
_llm_gateway: Optional[LLMGateway] = None


def get_llm_gateway() -> LLMGateway:
    """Get or create the singleton LLM gateway instance."""
    global _llm_gateway
    if _llm_gateway is None:
        _llm_gateway = LLMGateway()
    return _llm_gateway


def reset_llm_gateway() -> None:
    """Reset the LLM gateway (for testing)."""
    global _llm_gateway
    _llm_gateway = None
