"""
Product persistence on SQLAlchemy.

Calls are blocking; the async service runs them with asyncio.to_thread().
An in-memory SQLite database uses a single shared connection (StaticPool),
so repository calls are serialized with a lock.
"""

import threading
from decimal import Decimal

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, Product


class Database:
    """Owns the engine and session factory."""

    def __init__(self, url: str = "sqlite+pysqlite:///:memory:", echo: bool = False):
        self.url = url
        kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(url, **kwargs)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    @property
    def db_system(self) -> str:
        return self.engine.dialect.name

    @property
    def db_name(self) -> str | None:
        database = self.engine.url.database
        if self.engine.dialect.name == "sqlite":
            # SQLite's primary schema is always called "main".
            return "main"
        return database or None

    def session(self) -> Session:
        return self._sessions()

    def ensure_created(self) -> None:
        """Create tables that do not exist yet."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


class ProductRepository:
    def __init__(self, database: Database):
        self._db = database
        self._lock = threading.Lock()

    def list_recent(self, limit: int = 100) -> list[Product]:
        """Most recently created products first (ties broken by id)."""
        stmt = (
            select(Product)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
        )
        with self._lock, self._db.session() as session:
            return list(session.scalars(stmt))

    def get(self, product_id: int) -> Product | None:
        with self._lock, self._db.session() as session:
            return session.get(Product, product_id)

    def add(self, name: str, price: Decimal) -> Product:
        product = Product(name=name, price=price)
        with self._lock, self._db.session() as session:
            session.add(product)
            session.commit()
        return product

    def count(self) -> int:
        with self._lock, self._db.session() as session:
            return session.scalar(select(func.count()).select_from(Product)) or 0
