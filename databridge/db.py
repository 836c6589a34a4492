from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from databridge.models import OperationalBase, SharedBase
from databridge.settings import settings

operational_engine = create_engine(
    settings.operational_database_url,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    pool_timeout=settings.db_pool_timeout,
)
shared_engine = create_engine(
    settings.shared_database_url,
    pool_pre_ping=True,
    pool_size=settings.shared_db_pool_size,
    pool_timeout=settings.db_pool_timeout,
)

SessionLocal = sessionmaker(
    autoflush=False,
    expire_on_commit=False,
    binds={
        OperationalBase: operational_engine,
        SharedBase: shared_engine,
    },
)


def get_session() -> Iterator[Session]:
    # 트랜잭션 경계는 서비스 계층(JobTracker, Writer)이 직접 commit 한다
    with SessionLocal() as session:
        yield session
