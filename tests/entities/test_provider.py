"""Tests for metadata providers."""

from pathlib import Path

import pytest
from sample_models import Base
from sqlalchemy import text

from metricgraph.entities.models import AssociationKind, DirectTarget, PolymorphicTarget
from metricgraph.entities.provider import (
    MetadataLoadError,
    SQLAlchemyMetadataProvider,
    StaticMetadataProvider,
    load_registry,
)


class TestSQLAlchemyMetadataProvider:
    """Tests for reflecting a declarative registry."""

    def test_lists_every_mapped_entity(self, snapshot):
        """All mappers are reported, sorted by name."""
        names = [e.name for e in snapshot.entities]
        assert names == sorted(names)
        assert set(names) == {
            "ArchivedOrder",
            "Comment",
            "Customer",
            "LineItem",
            "Order",
            "Tag",
        }

    def test_entity_descriptor_fields(self, snapshot):
        """Table, primary key and column names come from the mapped table."""
        line_item = snapshot.entity("LineItem")
        assert line_item is not None
        assert line_item.table_name == "line_items"
        assert line_item.primary_key == "id"
        assert line_item.attribute_names == ("id", "order_id", "quantity")

    def test_table_existence(self, snapshot):
        """Entities whose table was never created are flagged."""
        assert snapshot.entity("ArchivedOrder").exists is False
        assert snapshot.entity("Order").exists is True

    def test_existence_unknown_without_engine(self):
        """Without an engine every entity is assumed to exist."""
        snapshot = SQLAlchemyMetadataProvider(Base).snapshot()
        assert all(e.exists for e in snapshot.entities)
        assert snapshot.schema_version is None

    def test_belongs_to(self, snapshot):
        """Many-to-one relationships become belongs_to with FK join columns."""
        (customer,) = [a for a in snapshot.associations_for("Order") if a.name == "customer"]
        assert customer.kind == AssociationKind.BELONGS_TO
        assert customer.target == DirectTarget(entity="Customer")
        assert customer.join_columns == (("customer_id", "id"),)
        assert customer.options["back_populates"] == "orders"
        assert customer.is_graph_edge

    def test_has_many(self, snapshot):
        """One-to-many relationships join from the owner's key."""
        (orders,) = snapshot.associations_for("Customer")
        assert orders.kind == AssociationKind.HAS_MANY
        assert orders.target_entity == "Order"
        assert orders.join_columns == (("id", "customer_id"),)
        assert not orders.is_graph_edge

    def test_has_many_through(self, snapshot):
        """Secondary tables are reported as the through table."""
        (tags,) = [a for a in snapshot.associations_for("Order") if a.name == "tags"]
        assert tags.kind == AssociationKind.HAS_MANY_THROUGH
        assert tags.through is not None
        assert tags.through.table_name == "order_tags"
        assert tags.through.source_columns == (("id", "order_id"),)
        assert tags.through.target_columns == (("tag_id", "id"),)
        assert tags.options["secondary"] == "order_tags"

    def test_polymorphic(self, snapshot):
        """Relationships flagged polymorphic have no static target."""
        (commentable,) = snapshot.associations_for("Comment")
        assert commentable.kind == AssociationKind.POLYMORPHIC
        assert commentable.target == PolymorphicTarget()
        assert commentable.target_entity is None
        assert commentable.options["polymorphic"] == "true"
        assert not commentable.is_graph_edge

    def test_reads_alembic_version(self, engine):
        """The migration version is reported when alembic has run."""
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32))"))
            conn.execute(text("INSERT INTO alembic_version VALUES ('3f2a1b')"))

        snapshot = SQLAlchemyMetadataProvider(Base, engine).snapshot()
        assert snapshot.schema_version == "3f2a1b"


class TestLoadRegistry:
    """Tests for importing a registry by path."""

    def test_loads_declarative_base(self):
        assert load_registry("sample_models:Base") is Base.registry

    def test_rejects_missing_attribute_separator(self):
        with pytest.raises(MetadataLoadError, match="module:attribute"):
            load_registry("sample_models")

    def test_rejects_unknown_module(self):
        with pytest.raises(MetadataLoadError, match="Cannot import"):
            load_registry("no_such_module_here:Base")

    def test_rejects_non_registry(self):
        with pytest.raises(MetadataLoadError, match="neither"):
            load_registry("sample_models:CREATED_TABLES")


class TestStaticMetadataProvider:
    """Tests for snapshots described by plain mappings."""

    def test_conventional_join_columns(self):
        """Missing join columns follow the ``<name>_id`` convention."""
        provider = StaticMetadataProvider(
            {
                "entities": [
                    {"name": "Customer", "table_name": "customers", "primary_key": "id"},
                    {
                        "name": "LineItem",
                        "table_name": "line_items",
                        "associations": [
                            {"name": "customer", "kind": "belongs_to", "target_entity": "Customer"}
                        ],
                    },
                    {
                        "name": "Order",
                        "table_name": "orders",
                        "associations": [
                            {"name": "line_items", "kind": "has_many", "target_entity": "LineItem"}
                        ],
                    },
                ]
            }
        )
        snapshot = provider.snapshot()

        (customer,) = snapshot.associations_for("LineItem")
        assert customer.join_columns == (("customer_id", "id"),)
        (line_items,) = snapshot.associations_for("Order")
        assert line_items.join_columns == (("id", "order_id"),)

    def test_polymorphic_option(self):
        """A ``polymorphic`` option marks the association polymorphic."""
        provider = StaticMetadataProvider(
            {
                "entities": [
                    {
                        "name": "Comment",
                        "associations": [
                            {
                                "name": "commentable",
                                "kind": "belongs_to",
                                "target_entity": None,
                                "options": {"polymorphic": True},
                            }
                        ],
                    }
                ]
            }
        )
        (commentable,) = provider.snapshot().associations_for("Comment")
        assert commentable.kind == AssociationKind.POLYMORPHIC
        assert commentable.is_polymorphic

    def test_missing_target_is_an_error(self):
        """A non-polymorphic association must name its target."""
        with pytest.raises(MetadataLoadError, match="no target"):
            StaticMetadataProvider(
                {"entities": [{"name": "Order", "associations": [{"name": "customer"}]}]}
            )

    def test_from_yaml_file(self, tmp_path: Path):
        path = tmp_path / "snapshot.yaml"
        path.write_text(
            "schema_version: '42'\n"
            "entities:\n"
            "  - name: Customer\n"
            "    table_name: customers\n"
            "    attribute_names: [id, name]\n"
            "    table_exists: false\n"
        )
        snapshot = StaticMetadataProvider.from_file(path).snapshot()

        assert snapshot.schema_version == "42"
        customer = snapshot.entity("Customer")
        assert customer.attribute_names == ("id", "name")
        assert customer.exists is False

    @pytest.mark.parametrize(
        "entity",
        [
            {"table_name": "customers"},
            {"name": "Order", "associations": [{"name": "customer", "kind": "owns"}]},
            {"name": "Order", "exists": "maybe"},
            {"name": "Order", "associations": ["customer"]},
        ],
        ids=["missing-name", "unknown-kind", "non-boolean-exists", "association-not-mapping"],
    )
    def test_malformed_entity_is_a_load_error(self, entity):
        with pytest.raises(MetadataLoadError, match="Invalid snapshot"):
            StaticMetadataProvider({"entities": [entity]})

    def test_malformed_file_is_a_load_error(self, tmp_path: Path):
        path = tmp_path / "snapshot.yaml"
        path.write_text("entities:\n  - table_name: customers\n")
        with pytest.raises(MetadataLoadError, match="KeyError"):
            StaticMetadataProvider.from_file(path)

    def test_from_file_rejects_non_mapping(self, tmp_path: Path):
        path = tmp_path / "snapshot.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(MetadataLoadError, match="must be a mapping"):
            StaticMetadataProvider.from_file(path)
