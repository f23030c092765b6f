"""
dex/registry.py - Known DEXes (factory + router) by name.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import load_dexes
from core.exceptions import ConfigError


@dataclass(frozen=True)
class DexInfo:
    name: str
    factory: str
    router: str


class DexRegistry:
    """Name -> DexInfo lookup for one chain."""

    def __init__(self, dexes: Dict[str, DexInfo]):
        self._dexes = dict(dexes)

    def get(self, name: str) -> Optional[DexInfo]:
        return self._dexes.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._dexes

    @property
    def names(self) -> list[str]:
        return list(self._dexes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DexRegistry":
        dexes = {}
        for name, entry in (data or {}).items():
            if not isinstance(entry, dict) or "factory" not in entry or "router" not in entry:
                raise ConfigError(
                    f"DEX {name} needs factory and router",
                    details={"dex": name},
                )
            dexes[name] = DexInfo(name=name, factory=entry["factory"], router=entry["router"])
        return cls(dexes)

    @classmethod
    def for_chain(cls, chain: str) -> "DexRegistry":
        data = load_dexes()
        if chain not in data:
            raise ConfigError(f"No DEXes configured for chain: {chain}", details={"chain": chain})
        return cls.from_dict(data[chain])
