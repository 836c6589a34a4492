"""Pytest configuration and fixtures."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from databridge.exceptions import ReportTimeoutError, SpApiError
from databridge.models import MarketplaceConfig, OperationalBase, SharedBase, SpApiCredential
from databridge.spapi.records import InventoryRecord, OrderRecord


# 테스트용 메모리 SQLite 엔진 (운영 DB / pricelab DB 각각)
# StaticPool: TestClient 워커 스레드에서도 같은 메모리 DB를 보도록
def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,  # 테스트 로그 줄이기
    )


operational_test_engine = _memory_engine()
shared_test_engine = _memory_engine()

TestSessionLocal = sessionmaker(
    autoflush=False,
    expire_on_commit=False,
    binds={
        OperationalBase: operational_test_engine,
        SharedBase: shared_test_engine,
    },
)


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 테이블을 새로 만들고 끝나면 삭제한다.
    """
    OperationalBase.metadata.create_all(bind=operational_test_engine)
    SharedBase.metadata.create_all(bind=shared_test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        SharedBase.metadata.drop_all(bind=shared_test_engine)
        OperationalBase.metadata.drop_all(bind=operational_test_engine)


@pytest.fixture(scope="function")
def session_factory(test_session: Session):
    """orchestrator/resolver가 사용할 세션 팩토리 (test_session과 같은 DB)."""
    return TestSessionLocal


@pytest.fixture
def seed_marketplaces(test_session: Session):
    """
    NA credential: US, CA
    EU credential: DE, FR (EU 창고), UK (UK 창고)
    """
    na = SpApiCredential(id=1, region="NA", account_name="na-main", refresh_token="rt-na",
                         client_id="cid", client_secret="secret", is_active=True)
    eu = SpApiCredential(id=2, region="EU", account_name="eu-main", refresh_token="rt-eu",
                         client_id="cid", client_secret="secret", is_active=True)
    test_session.add_all([na, eu])
    test_session.flush()

    marketplaces = [
        MarketplaceConfig(marketplace_id="ATVPDKIKX0DER", country_code="US", channel="us", warehouse="US",
                          region="NA", timezone_offset=-8, is_active=True, credential_id=1),
        MarketplaceConfig(marketplace_id="A2EUQ1WTGCTBG2", country_code="CA", channel="ca", warehouse="CA",
                          region="NA", timezone_offset=-8, is_active=True, credential_id=1),
        MarketplaceConfig(marketplace_id="A1PA6795UKMFR9", country_code="DE", channel="de", warehouse="EU",
                          region="EU", timezone_offset=1, is_active=True, credential_id=2),
        MarketplaceConfig(marketplace_id="A13V1IB3VIYZZH", country_code="FR", channel="fr", warehouse="EU",
                          region="EU", timezone_offset=1, is_active=True, credential_id=2),
        MarketplaceConfig(marketplace_id="A1F83G8C2ARO7P", country_code="UK", channel="uk", warehouse="UK",
                          region="EU", timezone_offset=0, is_active=True, credential_id=2),
    ]
    test_session.add_all(marketplaces)
    test_session.commit()
    return marketplaces


def make_order(order_id="111-0000001-0000001", sku="SKU-1", quantity=1, item_price=10.0,
               channel="us", marketplace_id="ATVPDKIKX0DER", asin="B000000001",
               local_day=date(2026, 10, 1), order_status="Shipped") -> OrderRecord:
    return OrderRecord(
        marketplace_id=marketplace_id,
        channel=channel,
        amazon_order_id=order_id,
        purchase_date=datetime(local_day.year, local_day.month, local_day.day, 12, tzinfo=timezone.utc),
        purchase_date_local=local_day,
        sku=sku,
        asin=asin,
        quantity=quantity,
        item_price=item_price,
        currency="USD",
        order_status=order_status,
        fulfillment_channel="Amazon",
    )


def make_inventory(sku="SKU-1", fulfillable=0, marketplace_id="ATVPDKIKX0DER", asin="B000000001",
                   fnsku="X000000001", **quantities) -> InventoryRecord:
    return InventoryRecord(
        marketplace_id=marketplace_id,
        sku=sku,
        asin=asin,
        fnsku=fnsku,
        fulfillable_quantity=fulfillable,
        **quantities,
    )


class FakeReportFetcher:
    """
    SP-API 대신 미리 준비한 레코드를 돌려주는 fetcher.
      inventory: warehouse -> [InventoryRecord]
      orders   : group label -> [OrderRecord]
      fail_for : 실패시킬 group label
    """

    def __init__(self):
        self.inventory = {}
        self.orders = {}
        self.fail_for = set()
        self.calls = []

    def fetch_inventory_snapshot(self, group):
        self.calls.append(("inventory", group.label))
        if group.label in self.fail_for:
            raise SpApiError("Service Unavailable", status_code=503)
        return list(self.inventory.get(group.warehouse, []))

    def fetch_orders(self, group, start, end):
        self.calls.append(("orders", group.label, start, end))
        if group.label in self.fail_for:
            raise ReportTimeoutError("report-1", 30, "IN_PROGRESS")
        return list(self.orders.get(group.label, []))


@pytest.fixture
def fake_fetcher():
    return FakeReportFetcher()


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def inventory_factory():
    return make_inventory


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (외부 서비스 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (메모리 SQLite로 여러 컴포넌트 연동)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
