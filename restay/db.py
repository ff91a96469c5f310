"""
Database connection and setup
SQLite database with SQLAlchemy
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from restay.models import Base

logger = logging.getLogger("db")

DATABASE_URL = settings.database_url

# Create engine with echo=False (set to True for SQL debugging)
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    echo=False
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """
    Initialize database - create all tables
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {DATABASE_URL}")

