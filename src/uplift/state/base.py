"""Abstract base for engine state repositories."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from uplift.core.logging import get_logger
from uplift.core.models import EngineState, StrategyParams

_logger = get_logger("state")


class StateRepository(ABC):
    """Persists engine state between cycles.

    Components never hold state themselves; a cycle opens a transaction,
    mutates the yielded EngineState and the repository writes it back when
    the block exits cleanly. An exception discards every change made in the
    block.

    ``initial_params`` are the configured strategy parameters. Loaded state
    carries them until the first cycle records history.
    """

    def __init__(self, initial_params: StrategyParams | None = None) -> None:
        self._lock = asyncio.Lock()
        self.initial_params = initial_params

    @abstractmethod
    async def load(self) -> EngineState:
        """Load the current state, or a fresh EngineState if none exists."""
        ...

    @abstractmethod
    async def save(self, state: EngineState) -> None:
        """Persist state, replacing what was stored."""
        ...

    def _seed(self, state: EngineState) -> EngineState:
        if self.initial_params is not None and state.seed_strategy_params(self.initial_params):
            _logger.debug("strategy_params_seeded", **self.initial_params.model_dump(mode="json"))
        return state

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[EngineState]:
        """Serialized read-modify-write over the stored state."""
        async with self._lock:
            state = await self.load()
            try:
                yield state
            except BaseException:
                _logger.warning("state_transaction_rolled_back")
                raise
            await self.save(state)
