from typing import Any, Iterable, Iterator, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_for(session: Session, model):
    """
    모델이 바인딩된 엔진의 dialect에 맞는 insert()를 반환합니다.
    운영은 PostgreSQL, 테스트는 SQLite이며 둘 다 on_conflict_do_update를 지원합니다.
    """
    dialect = session.get_bind(mapper=model.__mapper__).dialect.name
    if dialect == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


def upsert_statement(session: Session, model, rows: Sequence[dict[str, Any]],
                     conflict_cols: Sequence[str], update_cols: Iterable[str], extra_set: dict | None = None):
    stmt = insert_for(session, model).values(list(rows))
    set_ = {col: stmt.excluded[col] for col in update_cols}
    if extra_set:
        set_.update(extra_set)
    return stmt.on_conflict_do_update(index_elements=list(conflict_cols), set_=set_)


def chunked(rows: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]
