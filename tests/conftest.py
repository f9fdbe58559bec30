"""Shared pytest fixtures for all tests."""

import pytest
from factories import belongs_to
from sample_models import (
    CREATED_TABLES,
    Base,
    Comment,
    Customer,
    LineItem,
    Order,
    Tag,
)
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from metricgraph.entities.models import EntityDescriptor, MetadataSnapshot
from metricgraph.entities.provider import SQLAlchemyMetadataProvider


@pytest.fixture
def engine() -> Engine:
    """In-memory SQLite database with every sample table except archived_orders.

    Data:
        customers: Ada (3 line items), Grace (1 line item), Linus (none)
        orders: 10, 11 for Ada; 12 for Grace
    """
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(
        test_engine, tables=[Base.metadata.tables[name] for name in CREATED_TABLES]
    )

    with Session(test_engine) as session:
        ada = Customer(id=1, name="Ada")
        grace = Customer(id=2, name="Grace")
        linus = Customer(id=3, name="Linus")
        urgent = Tag(id=1, label="urgent")
        session.add_all([ada, grace, linus, urgent])
        session.add_all(
            [
                Order(id=10, customer=ada, tags=[urgent]),
                Order(id=11, customer=ada),
                Order(id=12, customer=grace),
            ]
        )
        session.flush()
        session.add_all(
            [
                LineItem(id=100, order_id=10, quantity=1),
                LineItem(id=101, order_id=10, quantity=2),
                LineItem(id=102, order_id=11, quantity=1),
                LineItem(id=103, order_id=12, quantity=5),
                Comment(id=1, body="late", commentable_type="Order", commentable_id=10),
            ]
        )
        session.commit()

    yield test_engine
    test_engine.dispose()


@pytest.fixture
def provider(engine: Engine) -> SQLAlchemyMetadataProvider:
    return SQLAlchemyMetadataProvider(Base, engine)


@pytest.fixture
def snapshot(provider: SQLAlchemyMetadataProvider) -> MetadataSnapshot:
    return provider.snapshot()


@pytest.fixture
def shop_snapshot() -> MetadataSnapshot:
    """Customer <- Order <- LineItem, matching the tables of ``engine``."""
    return MetadataSnapshot(
        entities=(
            EntityDescriptor(
                name="Customer",
                table_name="customers",
                primary_key="id",
                attribute_names=("id", "name"),
            ),
            EntityDescriptor(
                name="Order",
                table_name="orders",
                primary_key="id",
                attribute_names=("id", "customer_id"),
            ),
            EntityDescriptor(
                name="LineItem",
                table_name="line_items",
                primary_key="id",
                attribute_names=("id", "order_id", "quantity"),
            ),
        ),
        associations={
            "Order": (belongs_to("customer", "Customer"),),
            "LineItem": (belongs_to("order", "Order"),),
        },
    )
