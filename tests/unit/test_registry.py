"""
tests/unit/test_registry.py - DEX registry tests.
"""

import pytest

from core.exceptions import ConfigError, ErrorCode
from dex.registry import DexInfo, DexRegistry


@pytest.fixture
def sample_dexes():
    return {
        "QuickSwap": {"factory": "0x" + "11" * 20, "router": "0x" + "22" * 20},
        "Sushiswap": {"factory": "0x" + "33" * 20, "router": "0x" + "44" * 20},
    }


class TestDexRegistry:
    def test_from_dict(self, sample_dexes):
        registry = DexRegistry.from_dict(sample_dexes)

        assert registry.names == ["QuickSwap", "Sushiswap"]
        assert registry.get("QuickSwap") == DexInfo(
            name="QuickSwap", factory="0x" + "11" * 20, router="0x" + "22" * 20,
        )
        assert "Sushiswap" in registry

    def test_unknown_name(self, sample_dexes):
        registry = DexRegistry.from_dict(sample_dexes)
        assert registry.get("Uniswap") is None
        assert "Uniswap" not in registry

    def test_entry_without_router_is_rejected(self):
        with pytest.raises(ConfigError) as exc_info:
            DexRegistry.from_dict({"Broken": {"factory": "0x" + "11" * 20}})
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID
        assert exc_info.value.details == {"dex": "Broken"}

    def test_empty(self):
        assert DexRegistry.from_dict(None).names == []

    def test_packaged_polygon_registry(self):
        registry = DexRegistry.for_chain("polygon")
        for name in ("QuickSwap", "Sushiswap", "DFYN", "ApeSwap"):
            assert name in registry
            assert registry.get(name).factory.startswith("0x")
