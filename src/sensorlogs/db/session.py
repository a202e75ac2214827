from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from sensorlogs.config import settings
from sensorlogs.errors import ConfigurationError

# Pooled engine; nothing connects until the first checkout.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_recycle=settings.DB_POOL_RECYCLE,
    echo=settings.DB_ECHO,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

class Base(DeclarativeBase):
    pass

def check_store(bind=None) -> None:
    """Ping the store once; raise ConfigurationError when it is unreachable."""
    bind = bind or engine
    try:
        with bind.connect() as c:
            c.execute(text("select 1"))
    except SQLAlchemyError as e:
        logger.error("Store connectivity check failed: {}", e)
        raise ConfigurationError(f"cannot connect to database: {e}") from e
    logger.success("Database connected successfully")
