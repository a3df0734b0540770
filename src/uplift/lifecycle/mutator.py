"""Content mutator boundary.

The engine never edits pages itself. It asks a ContentMutator to apply a
pattern to a target and records the outcome. Mutators must tolerate being
asked twice for the same (target, pattern) pair.

Failure contract:
    - ``mutate`` returns True on success and False on a permanent failure.
    - Transient failures raise MutationError(retriable=True); only these are
      retried, by RetryingContentMutator, with exponential backoff.
"""

from __future__ import annotations

import asyncio
import os
import random
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from uplift.core.config import MutatorConfig, RetryConfig
from uplift.core.errors import MutationError
from uplift.core.logging import get_logger

_logger = get_logger("lifecycle.mutator")

_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


class ContentMutator(ABC):
    """Applies a pattern to one target."""

    @abstractmethod
    async def mutate(self, target_id: str, pattern_id: str) -> bool:
        """Apply ``pattern_id`` to ``target_id``.

        Returns:
            True if applied, False on a permanent failure.

        Raises:
            MutationError: On a transient failure worth retrying.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""


class InMemoryContentMutator(ContentMutator):
    """Records every call; can be told to fail for chosen targets.

    Attributes:
        calls: Every (target_id, pattern_id) pair requested, in order.
        applied: Pairs that were applied successfully.
        failing_targets: Targets that always fail permanently.
        transient_failures: Remaining transient failures per target; each
            call for that target consumes one and raises MutationError.
    """

    def __init__(
        self,
        failing_targets: set[str] | None = None,
        transient_failures: dict[str, int] | None = None,
    ) -> None:
        self.calls: list[tuple[str, str]] = []
        self.applied: set[tuple[str, str]] = set()
        self.failing_targets = set(failing_targets or ())
        self.transient_failures = dict(transient_failures or {})

    async def mutate(self, target_id: str, pattern_id: str) -> bool:
        self.calls.append((target_id, pattern_id))
        remaining = self.transient_failures.get(target_id, 0)
        if remaining > 0:
            self.transient_failures[target_id] = remaining - 1
            raise MutationError(target_id, "simulated transient failure")
        if target_id in self.failing_targets:
            return False
        self.applied.add((target_id, pattern_id))
        return True

    def calls_for(self, target_id: str) -> int:
        return sum(1 for called_target, _ in self.calls if called_target == target_id)


class HttpContentMutator(ContentMutator):
    """POSTs mutation requests to a content service.

    Payload: ``{"target_id": ..., "pattern_id": ...}``. A 2xx response is a
    success, 4xx a permanent failure, 5xx / timeout / connection error a
    transient failure.

    Header values may reference environment variables with ``${VAR}``.
    """

    def __init__(
        self,
        url: str | None = None,
        url_env: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url or (os.environ.get(url_env, "") if url_env else "")
        self._headers = self._expand_env_headers(headers or {})
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: MutatorConfig) -> HttpContentMutator:
        return cls(
            url=config.url,
            url_env=config.url_env,
            headers=config.headers,
            timeout=config.timeout,
        )

    @staticmethod
    def _expand_env_headers(headers: dict[str, str]) -> dict[str, str]:
        expanded: dict[str, str] = {}
        for key, value in headers.items():
            for var_name in _ENV_VAR_PATTERN.findall(value):
                env_value = os.environ.get(var_name)
                if env_value is None:
                    _logger.warning("mutator_env_var_missing", header=key, var_name=var_name)
                    env_value = ""
                value = value.replace(f"${{{var_name}}}", env_value)
            expanded[key] = value
        return expanded

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            kwargs: dict[str, Any] = {
                "timeout": httpx.Timeout(self._timeout),
                "headers": self._headers,
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def mutate(self, target_id: str, pattern_id: str) -> bool:
        if not self._url:
            raise MutationError(target_id, "mutator URL not configured", retriable=False)

        client = await self._get_client()
        try:
            response = await client.post(
                self._url,
                json={"target_id": target_id, "pattern_id": pattern_id},
            )
        except httpx.TimeoutException as e:
            raise MutationError(target_id, "request timed out") from e
        except httpx.RequestError as e:
            raise MutationError(target_id, str(e)) from e

        if response.is_success:
            return True
        if response.status_code >= 500:
            raise MutationError(target_id, f"HTTP {response.status_code}")
        _logger.warning(
            "mutation_rejected",
            target_id=target_id,
            pattern_id=pattern_id,
            status_code=response.status_code,
            body=response.text[:100],
        )
        return False

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


class RetryingContentMutator(ContentMutator):
    """Retries transient failures of a wrapped mutator with backoff.

    Delay before retry n (1-indexed) is
    ``min(max_delay, base_delay * exponential_base ** (n - 1))``, with up to
    25 % random jitter when enabled. Permanent failures and non-retriable
    errors are never retried.
    """

    JITTER_FACTOR = 0.25

    def __init__(
        self,
        inner: ContentMutator,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.inner = inner
        self.config = config or RetryConfig()
        self._sleep = sleep

    def delay_for(self, retry_number: int) -> float:
        delay = min(
            self.config.max_delay,
            self.config.base_delay * self.config.exponential_base ** (retry_number - 1),
        )
        if self.config.jitter and delay > 0:
            delay += random.uniform(0, delay * self.JITTER_FACTOR)
        return delay

    async def mutate(self, target_id: str, pattern_id: str) -> bool:
        for attempt in range(self.config.max_retries + 1):
            try:
                return await self.inner.mutate(target_id, pattern_id)
            except MutationError as e:
                if not e.retriable or attempt >= self.config.max_retries:
                    _logger.warning(
                        "mutation_gave_up",
                        target_id=target_id,
                        pattern_id=pattern_id,
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    return False
                delay = self.delay_for(attempt + 1)
                _logger.debug(
                    "mutation_retry_scheduled",
                    target_id=target_id,
                    attempt=attempt + 1,
                    delay_seconds=round(delay, 3),
                )
                await self._sleep(delay)
        return False

    async def close(self) -> None:
        await self.inner.close()


def create_mutator(config: MutatorConfig, retry: RetryConfig) -> ContentMutator | None:
    """Build the configured mutator wrapped in retry handling.

    Returns None when no mutator type is configured; the lifecycle manager
    then refuses to apply anything.
    """
    inner: ContentMutator
    if config.type == "http":
        inner = HttpContentMutator.from_config(config)
    elif config.type == "memory":
        _logger.warning("in_memory_mutator_selected", detail="no content will be changed")
        inner = InMemoryContentMutator()
    else:
        _logger.warning("no_mutator_configured", detail="set mutator.type to apply patterns")
        return None
    return RetryingContentMutator(inner, retry)
