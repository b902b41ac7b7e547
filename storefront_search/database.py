"""Product repository backed by SQLAlchemy."""

import asyncio
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import JSON, Column, Float, Integer, String, Text, cast, create_engine, func, or_, select
from sqlalchemy.exc import DatabaseError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront_search.logger import get_logger
from storefront_search.models import INDEX_FIELDS, SEARCH_FIELDS, Product, TextFilter

logger = get_logger()

Base = declarative_base()


class RepositoryError(Exception):
    """Raised when the product store cannot be read or written."""


class ProductRecord(Base):
    """SQLAlchemy model for the products table."""
    __tablename__ = "products"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    category = Column(String, nullable=False, default="", index=True)
    brand = Column(String, nullable=False, default="", index=True)
    price = Column(Float, nullable=False, default=0.0)
    rating = Column(Float, nullable=False, default=0.0)
    popularity = Column(Float, nullable=False, default=0.0)
    num_reviews = Column(Integer, nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)
    tags = Column(JSON, nullable=False, default=list)
    features = Column(JSON, nullable=False, default=list)
    vector_embedding = Column(JSON(none_as_null=True), nullable=True)


class ProductRepository(Protocol):
    """Read access to the catalog used by the search engine."""

    async def find_all(self, fields: Sequence[str], limit: Optional[int] = None) -> List[Product]:
        ...

    async def find_by_ids(self, ids: Sequence[str], fields: Sequence[str]) -> List[Product]:
        ...

    async def find_by_text_filter(
        self,
        text_filter: TextFilter,
        limit: int,
        fields: Sequence[str] = SEARCH_FIELDS
    ) -> List[Product]:
        ...

    async def update_embedding(self, product_id: str, embedding: Sequence[float]) -> None:
        ...


@contextmanager
def get_db_session(session_factory: sessionmaker):
    """
    Context manager for database sessions with error handling.

    Args:
        session_factory: Bound sessionmaker

    Yields:
        Database session
    """
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database error: {str(e)}", exc_info=True)
        raise
    finally:
        session.close()


def init_database(database_url: str = "sqlite:///./storefront.db"):
    """
    Create the products table if it doesn't exist.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        The SQLAlchemy engine
    """
    try:
        engine_args = {}
        connect_args = {}
        if database_url.startswith("sqlite:///"):
            # Sessions are opened from worker threads.
            connect_args["check_same_thread"] = False
            db_path = database_url[len("sqlite:///"):]
            if not db_path or db_path == ":memory:":
                # One shared connection, otherwise every thread sees its own empty database.
                engine_args["poolclass"] = StaticPool
            else:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(database_url, echo=False, connect_args=connect_args, **engine_args)
        Base.metadata.create_all(engine)
        logger.info(f"Database initialized at {database_url}")
        return engine
    except OperationalError as e:
        logger.error(f"Database initialization error: {str(e)}", exc_info=True)
        raise RepositoryError("Could not initialize the product database.") from e


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _json_member(column, term: str):
    """Match a JSON string array containing term exactly."""
    pattern = f"%{_like_escape(json.dumps(term))}%"
    return cast(column, String).like(pattern, escape="\\")


class SQLProductRepository:
    """
    ProductRepository over a SQL database.

    Blocking SQLAlchemy calls run in worker threads so the async search
    engine is never blocked on I/O.
    """

    def __init__(self, database_url: str = "sqlite:///./storefront.db", engine=None):
        self.database_url = database_url
        self.engine = engine or init_database(database_url)
        self.session_factory = sessionmaker(bind=self.engine)

    def _columns(self, fields: Iterable[str]):
        names = ["id"] + [name for name in fields if name != "id"]
        unknown = [name for name in names if not hasattr(ProductRecord, name)]
        if unknown:
            raise ValueError(f"Unknown product fields: {unknown}")
        return [getattr(ProductRecord, name) for name in names]

    def _run(self, statement) -> List[Product]:
        try:
            with get_db_session(self.session_factory) as session:
                rows = session.execute(statement).mappings().all()
                return [Product(**{k: v for k, v in row.items() if v is not None}) for row in rows]
        except (OperationalError, DatabaseError) as e:
            raise RepositoryError("Product store is unavailable.") from e

    def _find_all(self, fields: Sequence[str], limit: Optional[int]) -> List[Product]:
        statement = select(*self._columns(fields)).order_by(ProductRecord.pk)
        if limit is not None:
            statement = statement.limit(limit)
        return self._run(statement)

    def _find_by_ids(self, ids: Sequence[str], fields: Sequence[str]) -> List[Product]:
        if not ids:
            return []
        statement = (
            select(*self._columns(fields))
            .where(ProductRecord.id.in_(list(ids)))
            .order_by(ProductRecord.pk)
        )
        return self._run(statement)

    def _find_by_text_filter(self, text_filter: TextFilter, limit: int, fields: Sequence[str]) -> List[Product]:
        statement = select(*self._columns(fields))

        if text_filter.ids is not None:
            statement = statement.where(ProductRecord.id.in_(text_filter.ids))
        elif text_filter.text:
            text = text_filter.text
            statement = statement.where(or_(
                ProductRecord.name.icontains(text, autoescape=True),
                ProductRecord.description.icontains(text, autoescape=True),
                ProductRecord.brand.icontains(text, autoescape=True),
                ProductRecord.category.icontains(text, autoescape=True),
                _json_member(ProductRecord.tags, text.lower()),
                _json_member(ProductRecord.features, text.lower()),
            ))

        if text_filter.category:
            statement = statement.where(ProductRecord.category == text_filter.category)
        if text_filter.brand:
            statement = statement.where(ProductRecord.brand == text_filter.brand)
        if text_filter.min_price is not None:
            statement = statement.where(ProductRecord.price >= text_filter.min_price)
        if text_filter.max_price is not None:
            statement = statement.where(ProductRecord.price <= text_filter.max_price)

        if text_filter.order_by_quality:
            statement = statement.order_by(ProductRecord.rating.desc(), ProductRecord.popularity.desc())
        return self._run(statement.order_by(ProductRecord.pk).limit(limit))

    def _update_embedding(self, product_id: str, embedding: Sequence[float]) -> None:
        try:
            with get_db_session(self.session_factory) as session:
                record = session.execute(
                    select(ProductRecord).where(ProductRecord.id == product_id)
                ).scalar_one_or_none()
                if record is None:
                    raise RepositoryError(f"Product not found: {product_id}")
                record.vector_embedding = [float(value) for value in embedding]
        except (OperationalError, DatabaseError) as e:
            raise RepositoryError("Could not store the product embedding.") from e

    async def find_all(self, fields: Sequence[str] = INDEX_FIELDS, limit: Optional[int] = None) -> List[Product]:
        """Bulk-load products with the requested fields, in insertion order."""
        return await asyncio.to_thread(self._find_all, fields, limit)

    async def find_by_ids(self, ids: Sequence[str], fields: Sequence[str] = SEARCH_FIELDS) -> List[Product]:
        """Load the products whose ids are listed; unknown ids are skipped."""
        return await asyncio.to_thread(self._find_by_ids, ids, fields)

    async def find_by_text_filter(
        self,
        text_filter: TextFilter,
        limit: int,
        fields: Sequence[str] = SEARCH_FIELDS
    ) -> List[Product]:
        """
        Load products for the fallback search.

        With ids, only those products are considered; otherwise the text is
        matched case-insensitively against name, description, brand and
        category, or exactly against tags and features. Category and brand
        are exact filters; the price range is inclusive.
        """
        return await asyncio.to_thread(self._find_by_text_filter, text_filter, limit, fields)

    async def update_embedding(self, product_id: str, embedding: Sequence[float]) -> None:
        """Persist a product's pseudo-embedding."""
        await asyncio.to_thread(self._update_embedding, product_id, embedding)

    def add_products(self, products: Iterable[Product]) -> int:
        """
        Insert products, skipping ids that already exist.

        Returns:
            Number of products inserted
        """
        try:
            with get_db_session(self.session_factory) as session:
                existing = set(session.execute(select(ProductRecord.id)).scalars())
                inserted = 0
                for product in products:
                    if product.id in existing:
                        continue
                    session.add(ProductRecord(**product.model_dump()))
                    existing.add(product.id)
                    inserted += 1
            logger.info(f"Inserted {inserted} products")
            return inserted
        except (OperationalError, DatabaseError) as e:
            raise RepositoryError("Could not insert products.") from e

    def count(self) -> int:
        with get_db_session(self.session_factory) as session:
            return session.execute(select(func.count(ProductRecord.pk))).scalar_one()

