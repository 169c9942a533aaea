"""Explicit async initialization for lazily loaded collaborators.

A LazyProvider owns the load of one external capability (e.g. the PROJ
transformation pipeline) instead of module-scope side effects:

    UNINITIALIZED -> LOADING -> READY
                          \\-> FAILED -> (next get() retries) LOADING

Concurrent callers share one load under an asyncio.Lock; the load is bounded
by a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, TypeVar

from domain.coverage.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOAD_TIMEOUT_S = 10.0


class ProviderState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class LazyProvider(Generic[T]):
    """Load a resource once, on first use, with a timeout.

    The loader must report failure as ProviderUnavailableError.
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[T]],
        *,
        timeout_s: float = DEFAULT_LOAD_TIMEOUT_S,
    ) -> None:
        self.name = name
        self._loader = loader
        self._timeout_s = timeout_s
        self._state = ProviderState.UNINITIALIZED
        self._value: T | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ProviderState:
        return self._state

    async def get(self) -> T:
        """Return the loaded resource, loading it first if needed.

        Raises:
            ProviderUnavailableError: load timed out or failed
        """
        if self._state is ProviderState.READY:
            return self._value  # type: ignore[return-value]

        async with self._lock:
            # Another waiter may have finished the load
            if self._state is ProviderState.READY:
                return self._value  # type: ignore[return-value]

            self._state = ProviderState.LOADING
            logger.debug("Loading %s", self.name)
            try:
                value = await asyncio.wait_for(self._loader(), self._timeout_s)
            except asyncio.TimeoutError as e:
                self._state = ProviderState.FAILED
                raise ProviderUnavailableError(
                    f"Timeout waiting for {self.name} to load ({self._timeout_s}s)"
                ) from e
            except ProviderUnavailableError:
                self._state = ProviderState.FAILED
                raise

            self._value = value
            self._state = ProviderState.READY
            logger.debug("%s ready", self.name)
            return value

    def get_nowait(self) -> T:
        """Return the resource if READY.

        Raises:
            ProviderUnavailableError: not loaded yet (await get() first)
        """
        if self._state is not ProviderState.READY:
            raise ProviderUnavailableError(
                f"{self.name} is not ready (state={self._state.value})"
            )
        return self._value  # type: ignore[return-value]
