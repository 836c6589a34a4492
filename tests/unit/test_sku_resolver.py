"""
SkuResolver / TtlCache 테스트.
"""

import pytest

from databridge.models import SkuMaster
from databridge.services.sku_resolver import SkuLookupItem, SkuResolver, TtlCache, build_sku_mapping


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.unit
class TestBuildSkuMapping:
    def test_keys(self):
        mapping = build_sku_mapping([("SKU-1", "IW-1", "B01", "us")])
        assert mapping["SKU-1|US"] == "IW-1"
        assert mapping["SKU-1"] == "IW-1"
        assert mapping["asin:B01|US"] == "IW-1"

    def test_first_row_wins_for_fallback_keys(self):
        mapping = build_sku_mapping([
            ("SKU-1", "IW-FIRST", "B01", "US"),
            ("SKU-1", "IW-SECOND", "B01", "DE"),
        ])
        assert mapping["SKU-1"] == "IW-FIRST"
        assert mapping["SKU-1|DE"] == "IW-SECOND"

    def test_rows_without_iwasku_are_ignored(self):
        assert build_sku_mapping([("SKU-1", None, None, "US"), ("", "IW-1", None, "US")]) == {}


@pytest.mark.unit
class TestTtlCache:
    def test_reload_after_ttl(self):
        clock = FakeClock()
        loads = []

        def loader():
            loads.append(clock.now)
            return {"n": len(loads)}

        cache = TtlCache(loader, clock=clock)
        assert cache.get_or_reload(60) == {"n": 1}
        clock.now += 59
        assert cache.get_or_reload(60) == {"n": 1}
        clock.now += 1
        assert cache.get_or_reload(60) == {"n": 2}
        assert len(loads) == 2

    def test_invalidate_forces_reload(self):
        values = iter([{"v": 1}, {"v": 2}])
        cache = TtlCache(lambda: next(values), clock=FakeClock())
        first = cache.get_or_reload(3600)
        cache.invalidate()
        second = cache.get_or_reload(3600)
        assert first == {"v": 1}
        assert second == {"v": 2}

    def test_reload_swaps_reference(self):
        values = iter([{"v": 1}, {"v": 2}])
        cache = TtlCache(lambda: next(values), clock=FakeClock())
        served = cache.get_or_reload(3600)
        cache.invalidate()
        cache.get_or_reload(3600)
        # 이전에 받아간 매핑은 변경되지 않는다
        assert served == {"v": 1}


@pytest.fixture
def seeded_resolver(test_session, session_factory):
    test_session.add_all([
        SkuMaster(marketplace="amazon", sku="SKU-A", iwasku="IW-A-US", asin="B0A", country_code="US"),
        SkuMaster(marketplace="amazon", sku="SKU-A", iwasku="IW-A-DE", asin="B0A", country_code="DE"),
        SkuMaster(marketplace="amazon", sku="SKU-ONLY", iwasku="IW-ONLY", asin=None, country_code="UK"),
        SkuMaster(marketplace="amazon", sku="OLD-SKU", iwasku="IW-ASIN", asin="B0ASIN", country_code="FR"),
        SkuMaster(marketplace="walmart", sku="SKU-W", iwasku="IW-W", asin=None, country_code="US"),
    ])
    test_session.commit()
    clock = FakeClock()
    return SkuResolver(session_factory, ttl_seconds=3600, clock=clock), clock


@pytest.mark.unit
class TestSkuResolver:
    def test_exact_country_match_wins(self, seeded_resolver):
        resolver, _ = seeded_resolver
        assert resolver.resolve("SKU-A", "DE") == "IW-A-DE"
        assert resolver.resolve("SKU-A", "us") == "IW-A-US"

    def test_sku_only_fallback(self, seeded_resolver):
        resolver, _ = seeded_resolver
        assert resolver.resolve("SKU-ONLY", "US") == "IW-ONLY"

    def test_asin_fallback_requires_same_country(self, seeded_resolver):
        resolver, _ = seeded_resolver
        assert resolver.resolve("NEW-SKU", "FR", asin="B0ASIN") == "IW-ASIN"
        assert resolver.resolve("NEW-SKU", "DE", asin="B0ASIN") is None

    def test_unresolved_is_none(self, seeded_resolver):
        resolver, _ = seeded_resolver
        assert resolver.resolve("UNKNOWN", "US") is None

    def test_other_marketplaces_are_not_loaded(self, seeded_resolver):
        resolver, _ = seeded_resolver
        assert resolver.resolve("SKU-W", "US") is None

    def test_resolve_bulk(self, seeded_resolver):
        resolver, _ = seeded_resolver
        result = resolver.resolve_bulk([
            SkuLookupItem("SKU-A", "DE"),
            SkuLookupItem("SKU-ONLY", "DE"),
            SkuLookupItem("X", "FR", "B0ASIN"),
            SkuLookupItem("MISSING", "US"),
        ])
        assert result == {
            "SKU-A": "IW-A-DE",
            "SKU-ONLY": "IW-ONLY",
            "X": "IW-ASIN",
            "MISSING": None,
        }

    def test_new_master_rows_visible_after_ttl(self, seeded_resolver, test_session):
        resolver, clock = seeded_resolver
        assert resolver.resolve("LATE", "US") is None

        test_session.add(SkuMaster(marketplace="amazon", sku="LATE", iwasku="IW-LATE", country_code="US"))
        test_session.commit()
        assert resolver.resolve("LATE", "US") is None

        clock.now += 3600
        assert resolver.resolve("LATE", "US") == "IW-LATE"
