"""
data/state_store.py - Persisted risk state.

Only cooldown_until and kill_switch_active survive a restart; every other
risk field is derived.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from core.exceptions import ErrorCode, PersistenceError
from core.logging import get_logger

logger = get_logger("flarb.state_store")


@dataclass(frozen=True)
class PersistedRiskState:
    cooldown_until: Optional[float] = None
    kill_switch_active: bool = False


class RiskStateStore:
    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> PersistedRiskState:
        if not self.path.exists():
            return PersistedRiskState()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(
                f"Risk state unreadable, starting with kill switch armed: {e}",
                extra={"context": {"path": str(self.path)}},
            )
            return PersistedRiskState(kill_switch_active=True)
        cooldown = data.get("cooldown_until")
        return PersistedRiskState(
            cooldown_until=float(cooldown) if cooldown is not None else None,
            kill_switch_active=bool(data.get("kill_switch_active", False)),
        )

    def save(self, cooldown_until: Optional[float], kill_switch_active: bool) -> None:
        """
        Raises:
            PersistenceError
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(
                    {"cooldown_until": cooldown_until, "kill_switch_active": kill_switch_active},
                    f,
                )
            tmp.replace(self.path)
        except OSError as e:
            raise PersistenceError(
                code=ErrorCode.PERSISTENCE_ERROR,
                message=f"Could not save risk state: {e}",
                details={"path": str(self.path)},
            ) from e
