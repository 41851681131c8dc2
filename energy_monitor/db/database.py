from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from energy_monitor.core.config import settings

DATABASE_URL = settings.sqlalchemy_database_uri

engine_options: dict = {"pool_pre_ping": True}
if not DATABASE_URL.startswith("sqlite"):
    engine_options.update(
        pool_size=5,
        max_overflow=10,
        connect_args={"timeout": settings.db_timeout},
    )

engine = create_async_engine(DATABASE_URL, **engine_options)

async_session = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db():
    async with async_session() as session:
        yield session


# Alias used by routers for dependency injection
get_session = get_db
