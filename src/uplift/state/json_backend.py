"""JSON file-based state repository.

The whole engine state lives in one JSON document. Writes go to a temp file
that is then renamed over the original, so a crash mid-write never leaves a
truncated state file behind.
"""

import json
from pathlib import Path

from pydantic import ValidationError

from uplift.core.errors import InvalidMetricsError, StateCorruptionError
from uplift.core.logging import get_logger
from uplift.core.models import EngineState, Pattern, StrategyParams
from uplift.state.base import StateRepository

_logger = get_logger("state.json")


class JsonStateRepository(StateRepository):
    """Stores engine state in a single JSON file.

    A pattern entry that fails validation does not make the whole file
    unusable: it is set aside in ``EngineState.unreadable_patterns``, written
    back unchanged on save, and every other pattern loads normally.
    """

    def __init__(self, path: Path, initial_params: StrategyParams | None = None) -> None:
        super().__init__(initial_params)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def load(self) -> EngineState:
        if not self.path.exists():
            return self._seed(EngineState())

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateCorruptionError(f"Cannot read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StateCorruptionError(f"State file {self.path} is not a JSON object")

        raw_patterns = data.pop("patterns", {}) or {}
        unreadable = dict(data.pop("unreadable_patterns", {}) or {})
        patterns: dict[str, Pattern] = {}
        for pattern_id, raw in raw_patterns.items():
            try:
                patterns[pattern_id] = Pattern.model_validate(raw)
            except ValidationError as e:
                _logger.error(
                    "pattern_entry_unreadable",
                    pattern_id=pattern_id,
                    error=str(e),
                )
                unreadable[pattern_id] = raw

        try:
            state = EngineState.model_validate(data)
        except (ValidationError, InvalidMetricsError) as e:
            raise StateCorruptionError(f"Invalid state file {self.path}: {e}") from e
        state.patterns = patterns
        state.unreadable_patterns = unreadable
        return self._seed(state)

    async def save(self, state: EngineState) -> None:
        data = state.model_dump(mode="json", exclude={"unreadable_patterns"})
        for pattern_id, raw in state.unreadable_patterns.items():
            data["patterns"].setdefault(pattern_id, raw)

        temp_file = self.path.with_suffix(".json.tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp_file.replace(self.path)
        _logger.debug("state_saved", path=str(self.path), patterns=len(data["patterns"]))
