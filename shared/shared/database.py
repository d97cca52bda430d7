from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def get_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(database_url, echo=echo, future=True)


def get_session(engine: AsyncEngine):
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine):
    """
    Create every table registered on Base. Dev/test convenience;
    deployed databases are migrated with alembic.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
