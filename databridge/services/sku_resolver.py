from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from databridge.models import SkuMaster
from databridge.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class _CacheEntry(Generic[T]):
    value: T
    loaded_at: float


class TtlCache(Generic[T]):
    """
    값 하나를 TTL 동안 보관하는 캐시.
    reload는 새 값을 만든 뒤 참조만 교체하므로 읽는 쪽은 항상 완성된 값을 본다.
    """

    def __init__(self, loader: Callable[[], T], clock: Callable[[], float] = time.monotonic) -> None:
        self._loader = loader
        self._clock = clock
        self._entry: _CacheEntry[T] | None = None
        self._lock = threading.Lock()

    def get_or_reload(self, ttl_seconds: float) -> T:
        entry = self._entry
        if entry is not None and self._clock() - entry.loaded_at < ttl_seconds:
            return entry.value

        with self._lock:
            entry = self._entry
            if entry is not None and self._clock() - entry.loaded_at < ttl_seconds:
                return entry.value
            value = self._loader()
            self._entry = _CacheEntry(value=value, loaded_at=self._clock())
            return value

    def invalidate(self) -> None:
        self._entry = None

    @property
    def loaded_at(self) -> float | None:
        entry = self._entry
        return entry.loaded_at if entry else None


@dataclass(frozen=True)
class SkuLookupItem:
    sku: str
    country_code: str | None = None
    asin: str | None = None


def _norm_country(country_code: str | None) -> str:
    return (country_code or "").upper()


def build_sku_mapping(rows: Iterable[tuple[str, str, str | None, str | None]]) -> dict[str, str]:
    """
    (sku, iwasku, asin, country_code) 행으로 조회 키를 만든다.
      - "sku|CC"          : 국가별 정확 매칭
      - "sku"             : 국가 무관 fallback (먼저 나온 행 우선)
      - "asin:ASIN|CC"    : ASIN fallback (먼저 나온 행 우선)
    """
    mapping: dict[str, str] = {}
    for sku, iwasku, asin, country_code in rows:
        if not sku or not iwasku:
            continue
        country = _norm_country(country_code)
        mapping[f"{sku}|{country}"] = iwasku
        mapping.setdefault(sku, iwasku)
        if asin:
            mapping.setdefault(f"asin:{asin}|{country}", iwasku)
    return mapping


class SkuResolver:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self.ttl_seconds = settings.sku_cache_ttl if ttl_seconds is None else ttl_seconds
        self.cache: TtlCache[dict[str, str]] = TtlCache(self._load, clock=clock)

    def _load(self) -> dict[str, str]:
        with self._session_factory() as session:
            rows = session.execute(
                select(SkuMaster.sku, SkuMaster.iwasku, SkuMaster.asin, SkuMaster.country_code)
                .where(SkuMaster.marketplace == "amazon")
                .order_by(SkuMaster.id)
            ).all()
        mapping = build_sku_mapping(rows)
        logger.info(f"[SKU] Loaded {len(rows)} sku_master rows ({len(mapping)} lookup keys)")
        return mapping

    def _mapping(self) -> dict[str, str]:
        return self.cache.get_or_reload(self.ttl_seconds)

    @staticmethod
    def _lookup(mapping: dict[str, str], sku: str, country_code: str | None, asin: str | None) -> str | None:
        country = _norm_country(country_code)
        iwasku = mapping.get(f"{sku}|{country}") or mapping.get(sku)
        if iwasku is None and asin:
            iwasku = mapping.get(f"asin:{asin}|{country}")
        return iwasku

    def resolve(self, sku: str, country_code: str | None = None, asin: str | None = None) -> str | None:
        return self._lookup(self._mapping(), sku, country_code, asin)

    def resolve_bulk(self, items: Iterable[SkuLookupItem]) -> dict[str, str | None]:
        mapping = self._mapping()
        result: dict[str, str | None] = {}
        for item in items:
            result[item.sku] = self._lookup(mapping, item.sku, item.country_code, item.asin)

        unresolved = sum(1 for v in result.values() if v is None)
        if unresolved:
            logger.info(f"[SKU] {unresolved}/{len(result)} skus unresolved")
        return result

    def invalidate(self) -> None:
        self.cache.invalidate()
