"""Task runner collaborator: sends a prompt to the external agent with retries."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

import anthropic

from ..errors import FatalTaskError, RetryableTransport
from ..llm import ILLMProvider
from ..logging_config import get_logger

logger = get_logger(__name__)

# Checked first: a message matching one of these is never retried.
NON_RETRYABLE_PATTERNS = (
    "permission denied",
    "not found",
    "enoent",
    "invalid json",
    "syntax error",
)

RETRYABLE_PATTERNS = (
    "rate limit",
    "timeout",
    "econnrefused",
    "econnreset",
    "etimedout",
    "network error",
    "socket hang up",
    "temporary failure",
)

RETRYABLE_TYPES = (
    anthropic.RateLimitError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    asyncio.TimeoutError,
    ConnectionError,
)

NON_RETRYABLE_TYPES = (
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
    anthropic.NotFoundError,
    anthropic.BadRequestError,
)


def is_retryable_error(error: BaseException) -> bool:
    """Whether a failed query is worth repeating.

    SDK exception types anywhere in the cause chain decide first, then the
    message text. Unknown errors are treated as retryable.
    """
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, NON_RETRYABLE_TYPES):
            return False
        if isinstance(current, RETRYABLE_TYPES):
            return True
        current = current.__cause__

    message = str(error).lower()
    if any(pattern in message for pattern in NON_RETRYABLE_PATTERNS):
        return False
    if any(pattern in message for pattern in RETRYABLE_PATTERNS):
        return True
    return True


@dataclass
class TaskRunnerResponse:
    response: str
    usage: dict = field(default_factory=dict)  # model, input_tokens, output_tokens
    attempts: int = 1


class ITaskRunner(Protocol):
    """Performs one step of a task on an external agent."""

    async def query(
        self, prompt: str, history: list[dict] | None = None
    ) -> TaskRunnerResponse:
        """Send `prompt` after `history`; returns the reply and usage."""
        ...


class AnthropicTaskRunner:
    """ITaskRunner backed by the Anthropic LLM provider."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        role: str = "agent",
        system_prompt: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._llm = llm_provider
        self._role = role
        self._system_prompt = system_prompt
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._sleep = sleep

    @property
    def role(self) -> str:
        return self._role

    async def query(
        self, prompt: str, history: list[dict] | None = None
    ) -> TaskRunnerResponse:
        messages = [*(history or []), {"role": "user", "content": prompt}]

        for attempt in range(1, self._max_retries + 1):
            try:
                reply = await self._llm.query(messages, system=self._system_prompt)
            except Exception as e:
                retryable = is_retryable_error(e)
                if not retryable:
                    raise FatalTaskError(
                        f"[{self._role}] {e} (failed after {attempt} attempt(s))"
                    ) from e
                if attempt == self._max_retries:
                    raise RetryableTransport(
                        f"[{self._role}] {e} (failed after {attempt} attempt(s))",
                        attempts=attempt,
                    ) from e

                delay = self._retry_delay * attempt
                logger.warning(
                    "[%s] Retry %s/%s after %.1fs (%s)",
                    self._role,
                    attempt,
                    self._max_retries,
                    delay,
                    e,
                )
                await self._sleep(delay)
                continue

            return TaskRunnerResponse(
                response=reply.text,
                usage={"model": reply.model, **reply.usage},
                attempts=attempt,
            )

        raise FatalTaskError(f"[{self._role}] max_retries must be at least 1")
