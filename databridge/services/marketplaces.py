from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Hashable, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from databridge.exceptions import MarketplaceNotFound
from databridge.models import MarketplaceConfig, SpApiCredential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibleMarketplace:
    marketplace: MarketplaceConfig
    credential: SpApiCredential


@dataclass
class MarketplaceGroup:
    """
    같은 credential(및 inventory의 경우 같은 warehouse)을 공유하는 마켓 묶음.
    members[0]이 대표 마켓으로 요청을 보낸다.
    """

    credential: SpApiCredential
    members: list[MarketplaceConfig] = field(default_factory=list)

    @property
    def representative(self) -> MarketplaceConfig:
        return self.members[0]

    @property
    def warehouse(self) -> str:
        return self.representative.warehouse

    @property
    def marketplace_ids(self) -> list[str]:
        return [m.marketplace_id for m in self.members]

    @property
    def label(self) -> str:
        return ",".join(m.country_code for m in self.members)

    def member_for_channel(self, channel: str) -> MarketplaceConfig:
        return next((m for m in self.members if m.channel == channel), self.representative)


def _region_fallback(session: Session, region: str) -> SpApiCredential | None:
    return session.scalars(
        select(SpApiCredential)
        .where(func.upper(SpApiCredential.region) == region.upper(), SpApiCredential.is_active.is_(True))
        .order_by(SpApiCredential.id)
        .limit(1)
    ).first()


def credential_for(session: Session, marketplace: MarketplaceConfig) -> SpApiCredential | None:
    """연결된 credential이 없으면 같은 region의 활성 credential로 대체한다."""
    if marketplace.credential_id is not None:
        credential = marketplace.credential
        if credential is not None and credential.is_active:
            return credential
        return None
    return _region_fallback(session, marketplace.region)


def eligible_marketplaces(session: Session) -> list[EligibleMarketplace]:
    marketplaces = session.scalars(
        select(MarketplaceConfig)
        .where(MarketplaceConfig.is_active.is_(True))
        .order_by(MarketplaceConfig.country_code)
    ).unique().all()

    eligible = []
    for marketplace in marketplaces:
        credential = credential_for(session, marketplace)
        if credential is None:
            logger.warning(f"[SYNC] Skipping {marketplace.country_code}: no active SP-API credential")
            continue
        eligible.append(EligibleMarketplace(marketplace, credential))
    return eligible


def get_marketplace(session: Session, code: str) -> MarketplaceConfig:
    marketplace = session.scalars(
        select(MarketplaceConfig).where(func.upper(MarketplaceConfig.country_code) == code.upper())
    ).unique().first()
    if marketplace is None:
        raise MarketplaceNotFound(code)
    return marketplace


def build_groups(
    eligible: Iterable[EligibleMarketplace],
    key: Callable[[EligibleMarketplace], Hashable],
) -> list[MarketplaceGroup]:
    """입력 순서를 유지하며 key가 같은 마켓을 하나의 그룹으로 묶는다."""
    groups: dict[Hashable, MarketplaceGroup] = {}
    for item in eligible:
        group_key = key(item)
        group = groups.get(group_key)
        if group is None:
            group = groups[group_key] = MarketplaceGroup(credential=item.credential)
        group.members.append(item.marketplace)
    return list(groups.values())


def inventory_groups(eligible: Iterable[EligibleMarketplace]) -> list[MarketplaceGroup]:
    # 한 warehouse(EU 등)는 여러 마켓이 재고를 공유하므로 대표 마켓 한 번만 조회
    return build_groups(eligible, key=lambda e: (e.credential.id, e.marketplace.warehouse))


def sales_groups(eligible: Iterable[EligibleMarketplace]) -> list[MarketplaceGroup]:
    return build_groups(eligible, key=lambda e: e.credential.id)
