import os
import sys

from alembic import context
from sqlalchemy import pool, create_engine

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from databridge.models import OperationalBase, SharedBase
from databridge.settings import settings

# Mapping of database name to (Metadata, URL)
db_info = {
    "operational": {"metadata": OperationalBase.metadata, "url": settings.operational_database_url},
    "shared": {"metadata": SharedBase.metadata, "url": settings.shared_database_url},
}

# sku_master is owned by the downstream application; never migrated from here
EXTERNAL_TABLES = {"shared": {"sku_master"}}

config = context.config


def _include_object_for(name, info):
    def include_object(object, object_name, type_, reflected, compare_to):
        if type_ == "table":
            if object_name in EXTERNAL_TABLES.get(name, set()):
                return False
            return object_name in info["metadata"].tables
        return True
    return include_object


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode for all configured databases."""
    for name, info in db_info.items():
        context.configure(
            url=info["url"],
            target_metadata=info["metadata"],
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
            version_table=f"alembic_version_{name}", # Separate version table per DB
            include_object=_include_object_for(name, info),
        )

        with context.begin_transaction():
            context.run_migrations(engine_name=name)


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    for name, info in db_info.items():
        engine = create_engine(info["url"], poolclass=pool.NullPool)

        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=info["metadata"],
                version_table=f"alembic_version_{name}", # Separate version table per DB
                include_object=_include_object_for(name, info),
            )

            with context.begin_transaction():
                context.run_migrations(engine_name=name)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
