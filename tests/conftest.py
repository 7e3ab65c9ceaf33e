"""
Shared fixtures: a file-backed SQLite database per test with a products
table carrying single-column, composite and integer unique constraints.
"""
import pytest
from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    func,
    insert,
    select,
)

from langshadow.core.config import MultiLangConfig
from langshadow.core.database import create_db_engine
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.services.schema_provisioner import SchemaProvisioner

LANGUAGES = ["en", "fr", "nl"]


def create_products_table(db_engine):
    metadata = MetaData()
    Table(
        "products",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(100), nullable=False),
        Column("slug", String(100), nullable=False),
        Column("category", String(50)),
        Column("sku", String(50)),
        Column("code", Integer),
        UniqueConstraint("slug", name="uq_products_slug"),
        UniqueConstraint("category", "sku", name="uq_products_category_sku"),
        UniqueConstraint("code", name="uq_products_code"),
    )
    metadata.create_all(db_engine)


class Rows:
    """Direct table access for arranging and asserting test data"""

    def __init__(self, db_engine):
        self.engine = db_engine

    def _table(self, table: str) -> Table:
        return Table(table, MetaData(), autoload_with=self.engine)

    def insert(self, table: str, **values):
        """Insert one row and return its primary key."""
        reflected = self._table(table)
        with self.engine.begin() as conn:
            return conn.execute(insert(reflected).values(**values)).inserted_primary_key[0]

    def all(self, table: str):
        reflected = self._table(table)
        with self.engine.connect() as conn:
            query = select(reflected).order_by(*reflected.primary_key.columns)
            return [dict(row) for row in conn.execute(query).mappings()]

    def count(self, table: str) -> int:
        reflected = self._table(table)
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(reflected)).scalar()


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite database for every test"""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def config():
    return MultiLangConfig(
        languages=LANGUAGES,
        fallback_language="en",
        tables=["products"],
    )


@pytest.fixture
def inspector():
    return ConstraintInspector()


@pytest.fixture
def products(engine):
    """Untracked products table"""
    create_products_table(engine)
    return "products"


@pytest.fixture
def tracked_products(engine, products, inspector):
    """Products table with row_id / iso provisioned"""
    SchemaProvisioner(engine, inspector).add_columns(products)
    return products


@pytest.fixture
def rows(engine):
    return Rows(engine)
