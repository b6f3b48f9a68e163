# -*- coding: utf-8 -*-
"""
SQLAlchemy ORM models for users, searches, comparisons and products.

Uses async SQLAlchemy engine with asyncpg driver (SQLite fallback).
Tables: users, tokens, searches, compares, products, compare_products.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable
from uuid import uuid4

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey,
    Integer, String,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

import os

from app.config import settings
from app.utils.logger import get_logger

logger = get_logger(__name__)

# ── Engine & Session ──────────────────────────────────────────────────────────

_db_url = settings.database_url or ""

# Convert postgresql:// to postgresql+asyncpg:// for async driver
if _db_url.startswith("postgresql://"):
    _db_url = _db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
elif _db_url.startswith("postgres://"):
    _db_url = _db_url.replace("postgres://", "postgresql+asyncpg://", 1)

# Fallback to local SQLite when no DATABASE_URL is set
if not _db_url:
    _data_dir = os.path.join(os.path.dirname(__file__), "..", "..", "data")
    os.makedirs(_data_dir, exist_ok=True)
    _sqlite_path = os.path.abspath(os.path.join(_data_dir, "shoplens.db"))
    _db_url = f"sqlite+aiosqlite:///{_sqlite_path}"
    logger.info("Using SQLite fallback: %s", _sqlite_path)

if _db_url.startswith("sqlite"):
    # aiosqlite connections are bound to the loop that opened them
    engine = create_async_engine(_db_url, echo=False, poolclass=NullPool)
else:
    engine = create_async_engine(_db_url, echo=False, pool_pre_ping=True)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


# ═══════════════════════════════════════════════════════════════════════════════
# TABLE: users / tokens
# ═══════════════════════════════════════════════════════════════════════════════


class User(Base):
    __tablename__ = "users"

    id         = Column(String(36), primary_key=True, default=_uuid)
    name       = Column(String(255), nullable=False)
    email      = Column(String(255), nullable=False, unique=True, index=True)
    image_url  = Column(String(255), nullable=True)
    password   = Column(String(255), nullable=True)
    verified   = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class VerificationToken(Base):
    __tablename__ = "tokens"

    id         = Column(String(36), primary_key=True, default=_uuid)
    user_id    = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token      = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


# ═══════════════════════════════════════════════════════════════════════════════
# TABLE: searches / compares
# ═══════════════════════════════════════════════════════════════════════════════


class Search(Base):
    __tablename__ = "searches"

    id          = Column(String(36), primary_key=True, default=_uuid)
    user_id     = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    query       = Column(String(1024), nullable=False)
    is_favorite = Column(Boolean, nullable=False, default=False)
    created_at  = Column(DateTime, default=datetime.utcnow)


class Comparison(Base):
    __tablename__ = "compares"

    id          = Column(String(36), primary_key=True, default=_uuid)
    user_id     = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title       = Column(String(255), nullable=False)
    product_url = Column(JSON, nullable=True)      # list of compared URLs
    summary     = Column(String(2048), nullable=False)
    insights    = Column(JSON, nullable=True)      # {best_index, title, reasons}
    created_at  = Column(DateTime, default=datetime.utcnow)


# ═══════════════════════════════════════════════════════════════════════════════
# TABLE: products / compare_products
# ═══════════════════════════════════════════════════════════════════════════════


class Product(Base):
    __tablename__ = "products"

    id              = Column(String(36), primary_key=True, default=_uuid)
    search_id       = Column(
        String(36),
        ForeignKey("searches.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    compare_id      = Column(
        String(36),
        ForeignKey("compares.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    product_name    = Column(String(255), nullable=True)
    brand           = Column(String(255), nullable=True)
    model           = Column(String(255), nullable=True)
    price           = Column(String(50), nullable=True)
    original_price  = Column(String(50), nullable=True)
    savings         = Column(String(50), nullable=True)
    image           = Column(String(1024), nullable=True)
    images          = Column(JSON, nullable=True)
    rating          = Column(Float, nullable=True)
    reviews         = Column(Integer, nullable=True)
    product_url     = Column(String(1024), nullable=True)
    store           = Column(String(255), nullable=True)
    asin            = Column(String(50), nullable=True)
    category        = Column(String(1024), nullable=True)
    description     = Column(String(2048), nullable=True)
    product_info    = Column(JSON, nullable=True)
    feature_bullets = Column(JSON, nullable=True)
    pros            = Column(JSON, nullable=True)
    cons            = Column(JSON, nullable=True)
    created_at      = Column(DateTime, default=datetime.utcnow)


class CompareProduct(Base):
    __tablename__ = "compare_products"

    id         = Column(String(36), primary_key=True, default=_uuid)
    compare_id = Column(
        String(36),
        ForeignKey("compares.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# INIT, SESSION & SERIALIZATION HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


async def init_db():
    """Create tables if they don't exist. Safe to call on every startup."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("DB tables created / verified ✓ (%s)", engine.dialect.name)


async def get_db():
    """FastAPI Depends() — yields an AsyncSession, closes in finally."""
    session = async_session()
    try:
        yield session
    finally:
        await session.close()


def row_to_dict(row: Any, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Column values of an ORM row as a JSON-ready dict."""
    skip = set(exclude)
    data: Dict[str, Any] = {}
    for col in row.__table__.columns:
        if col.name in skip:
            continue
        value = getattr(row, col.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[col.name] = value
    return data
