"""Tests for Snapshot, PriceUpdate and PriceMap."""

import pytest

from app.realtime.models import ABSENT, InstrumentKind, Present, PriceMap, PriceUpdate, Snapshot, freeze


def _update(price=190.50, previous=190.00, symbol="ETH", kind=InstrumentKind.ANCHOR) -> PriceUpdate:
    return PriceUpdate(symbol=symbol, kind=kind, price=price, previous_price=previous, timestamp=1234567890.0)


class TestField:
    """Tests for the present/absent field values."""

    def test_absent_is_singleton(self):
        assert type(ABSENT)() is ABSENT

    def test_absent_get_returns_default(self):
        assert ABSENT.get() is None
        assert ABSENT.get("n/a") == "n/a"
        assert not ABSENT.is_present
        assert not ABSENT

    def test_present_holds_value(self):
        """Present keeps falsy values distinguishable from absence."""
        field = Present(0)
        assert field.is_present
        assert field.get("n/a") == 0

    def test_present_equality(self):
        assert Present([1, 2]) == Present([1, 2])
        assert Present(1) != Present(2)

    def test_freeze_converts_containers(self):
        """Test that lists, sets and dicts come back immutable, recursively."""
        frozen = freeze({"protocols": ["aave", "compound"], "tags": {"lending"}})

        assert frozen["protocols"] == ("aave", "compound")
        assert frozen["tags"] == frozenset({"lending"})
        with pytest.raises(TypeError):
            frozen["protocols"] = ()

    def test_freeze_leaves_scalars_and_records(self):
        update = _update()
        assert freeze(update) is update
        assert freeze("aave") == "aave"
        assert freeze(None) is None


class TestSnapshot:
    """Unit tests for the Snapshot model."""

    def test_empty(self):
        """Test the default state before any tick."""
        snapshot = Snapshot.empty(["protocols", "opportunities"])
        assert list(snapshot.fields) == ["protocols", "opportunities"]
        assert all(f is ABSENT for f in snapshot.fields.values())
        assert snapshot.updated_at == 0.0
        assert snapshot.tick == 0

    def test_success_ratio(self):
        """Test the per-tick success ratio."""
        snapshot = Snapshot(fields={}, succeeded=3, attempted=4)
        assert snapshot.success_ratio == 0.75

    def test_success_ratio_without_attempts(self):
        assert Snapshot(fields={}).success_ratio == 1.0

    def test_is_stale(self):
        """Stale means attempted but nothing succeeded."""
        assert Snapshot(fields={}, succeeded=0, attempted=3).is_stale
        assert not Snapshot(fields={}, succeeded=1, attempted=3).is_stale
        assert not Snapshot(fields={}).is_stale

    def test_value(self):
        snapshot = Snapshot(fields={"a": Present(1), "b": ABSENT})
        assert snapshot.value("a") == 1
        assert snapshot.value("b") is None
        assert snapshot.value("missing", "default") == "default"

    def test_fields_are_copied(self):
        """Mutating the source dict does not change the snapshot."""
        fields = {"a": Present(1)}
        snapshot = Snapshot(fields=fields)
        fields["a"] = Present(2)
        assert snapshot.value("a") == 1

    def test_fields_read_only(self):
        snapshot = Snapshot(fields={"a": Present(1)})
        with pytest.raises(TypeError):
            snapshot.fields["a"] = Present(2)  # type: ignore[index]

    def test_immutability(self):
        """Test that Snapshot is immutable."""
        snapshot = Snapshot(fields={})
        with pytest.raises(AttributeError):
            snapshot.updated_at = 5.0  # type: ignore[misc]

    def test_to_dict(self):
        """Test serialization to dictionary."""
        snapshot = Snapshot(
            fields={"protocols": Present(["aave"]), "opportunities": ABSENT},
            updated_at=1234567890.0,
            tick=2,
            succeeded=1,
            attempted=2,
            failed=("opportunities",),
        )
        result = snapshot.to_dict()

        assert result["fields"] == {"protocols": ["aave"], "opportunities": None}
        assert result["present"] == ["protocols"]
        assert result["updated_at"] == 1234567890.0
        assert result["tick"] == 2
        assert result["success_ratio"] == 0.5
        assert result["failed"] == ["opportunities"]


class TestPriceUpdate:
    """Unit tests for the PriceUpdate model."""

    def test_change_calculation(self):
        assert _update(190.50, 190.00).change == 0.50

    def test_change_percent_up(self):
        assert _update(190.00, 100.00).change_percent == 90.0

    def test_change_percent_down(self):
        assert _update(100.00, 200.00).change_percent == -50.0

    def test_change_percent_zero_previous(self):
        assert _update(100.00, 0.00).change_percent == 0.0

    def test_direction(self):
        """Test direction calculation."""
        assert _update(191.00, 190.00).direction == "up"
        assert _update(189.00, 190.00).direction == "down"
        assert _update(190.00, 190.00).direction == "flat"

    def test_to_dict(self):
        """Test serialization to dictionary."""
        result = _update(1.0005, 1.0, symbol="USDC", kind=InstrumentKind.PEGGED).to_dict()

        assert result["symbol"] == "USDC"
        assert result["kind"] == "pegged"
        assert result["price"] == 1.0005
        assert result["previous_price"] == 1.0
        assert result["timestamp"] == 1234567890.0
        assert result["change_percent"] == 0.05
        assert result["direction"] == "up"

    def test_immutability(self):
        update = _update()
        with pytest.raises(AttributeError):
            update.price = 200.00  # type: ignore[misc]


class TestPriceMap:
    """Unit tests for the PriceMap mapping."""

    def test_mapping_behaviour(self):
        eth = _update(1750.0, 1750.0)
        price_map = PriceMap({"ETH": eth}, tick=3, timestamp=10.0)

        assert price_map["ETH"] is eth
        assert len(price_map) == 1
        assert list(price_map) == ["ETH"]
        assert "ETH" in price_map
        assert price_map.get("BTC") is None

    def test_prices_and_kinds(self):
        price_map = PriceMap(
            {
                "ETH": _update(1750.0, 1750.0),
                "USDC": _update(1.0, 1.0, symbol="USDC", kind=InstrumentKind.PEGGED),
            }
        )
        assert price_map.prices() == {"ETH": 1750.0, "USDC": 1.0}
        assert price_map.kinds()["USDC"] is InstrumentKind.PEGGED

    def test_source_dict_is_copied(self):
        updates = {"ETH": _update()}
        price_map = PriceMap(updates)
        updates["BTC"] = _update(symbol="BTC")
        assert "BTC" not in price_map

    def test_to_dict(self):
        price_map = PriceMap({"ETH": _update()}, tick=1, timestamp=5.0)
        result = price_map.to_dict()
        assert result["tick"] == 1
        assert result["timestamp"] == 5.0
        assert result["prices"]["ETH"]["price"] == 190.50
