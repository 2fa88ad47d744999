from sqlalchemy import create_engine, pool
from alembic import context
from storefront.core.config import settings
from storefront.db.session import Base
import storefront.db.models  # noqa

config = context.config
target_metadata = Base.metadata

VERSION_TABLE = "alembic_version_storefront"

def database_url() -> str:
    # precedence: programmatic override, `alembic -x url=...`, then DATABASE_URL
    return (
        config.attributes.get("url")
        or context.get_x_argument(as_dictionary=True).get("url")
        or settings.DATABASE_URL
    )

def configure(url: str, **kwargs):
    context.configure(
        target_metadata=target_metadata,
        version_table=VERSION_TABLE,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs
    )

def run_migrations_offline():
    url = database_url()
    configure(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    url = database_url()
    connectable = create_engine(url, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        configure(url, connection=connection)
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
