"""Entity metadata: descriptors, associations and the providers that report them."""

from metricgraph.entities.models import (
    Association,
    AssociationKind,
    DirectTarget,
    EntityDescriptor,
    MetadataSnapshot,
    PolymorphicTarget,
    ThroughTable,
)
from metricgraph.entities.provider import (
    MetadataLoadError,
    MetadataProvider,
    SQLAlchemyMetadataProvider,
    StaticMetadataProvider,
    load_registry,
)

__all__ = [
    "Association",
    "AssociationKind",
    "DirectTarget",
    "EntityDescriptor",
    "MetadataLoadError",
    "MetadataProvider",
    "MetadataSnapshot",
    "PolymorphicTarget",
    "SQLAlchemyMetadataProvider",
    "StaticMetadataProvider",
    "ThroughTable",
    "load_registry",
]
