"""
Database engine configuration and session management.

Current: SQLite (async with aiosqlite)
Future: PostgreSQL (switch to asyncpg)

Services commit their own writes so cache invalidation can follow the
commit; get_db commits whatever is left (audit entries) after the handler
returns, or rolls back.
"""
from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core import config


def make_engine(url: str) -> AsyncEngine:
    # NullPool for SQLite to avoid connection pool issues
    # For PostgreSQL, use the default QueuePool
    kwargs = {"poolclass": NullPool} if url.startswith("sqlite") else {}
    return create_async_engine(url, echo=False, future=True, **kwargs)


engine = make_engine(config.SQLALCHEMY_DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    
    Usage in FastAPI routes:
        @router.get("/roles")
        async def list_roles(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Role))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(bind: AsyncEngine | None = None):
    """
    Create all tables.
    
    Called on application startup and by the seed script. Tests pass their
    own in-memory engine.
    """
    from app.core.database.base import Base
    
    # Import all models to ensure they're registered with SQLAlchemy
    from app.features.admins.models import Admin  # noqa: F401
    from app.features.permissions.models import Permission, Role, AuditLog  # noqa: F401
    
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
