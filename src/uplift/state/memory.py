"""In-memory state repository for testing.

Stores a serialized copy so that a rolled-back transaction leaves the
stored state untouched, just like the file-backed repository.
"""

from uplift.core.models import EngineState, StrategyParams
from uplift.state.base import StateRepository


class InMemoryStateRepository(StateRepository):
    """State repository without filesystem I/O."""

    def __init__(
        self,
        initial: EngineState | None = None,
        initial_params: StrategyParams | None = None,
    ) -> None:
        super().__init__(initial_params)
        self._data: dict | None = initial.model_dump(mode="json") if initial else None
        self.save_count = 0

    async def load(self) -> EngineState:
        if self._data is None:
            return self._seed(EngineState())
        return self._seed(EngineState.model_validate(self._data))

    async def save(self, state: EngineState) -> None:
        self._data = state.model_dump(mode="json")
        self.save_count += 1
