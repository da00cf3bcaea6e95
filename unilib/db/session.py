from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from unilib.core.config import settings

# SQLite (tests) necesita compartir la conexión entre hilos del TestClient
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

# Engine: PostgreSQL en producción
engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    connect_args=connect_args,
)

# SessionLocal: lo que inyectamos en los endpoints
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

# Base: clase base para los modelos SQLAlchemy
Base = declarative_base()
