"""Error taxonomy for schema introspection and metric planning.

Every error carries a stable ``code`` that is reported inline next to the
metric configuration it belongs to, so a failing instruction never aborts
its batch.
"""

from __future__ import annotations


class MetricGraphError(Exception):
    """Base class for conditions reported per instruction."""

    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownEntityError(MetricGraphError):
    """An instruction names an entity absent from the current snapshot."""

    code = "unknown_entity"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown entity: {name}")


class UnknownAssociationError(MetricGraphError):
    """An explicit join path names an association the current entity lacks."""

    code = "unknown_association"

    def __init__(self, entity: str, association: str):
        self.entity = entity
        self.association = association
        super().__init__(f"Entity {entity} has no joinable association named {association}")


class NoJoinPathError(MetricGraphError):
    """No chain of associations connects the source to the pivot."""

    code = "no_join_path"

    def __init__(self, source: str, target: str, reason: str | None = None):
        self.source = source
        self.target = target
        message = f"No join path from {source} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AmbiguousJoinError(NoJoinPathError):
    """Parallel associations between two path vertices remain tied after tie-breaking.

    Reported with the ``no_join_path`` code.
    """

    def __init__(self, source: str, target: str, candidates: list[str]):
        self.candidates = candidates
        super().__init__(
            source,
            target,
            reason=f"ambiguous associations {', '.join(sorted(candidates))}",
        )


class InvalidPivotError(MetricGraphError):
    """The pivot cannot be grouped on (no primary key or unknown attribute)."""

    code = "invalid_pivot"


class RankingDivergedError(MetricGraphError):
    """Power iteration produced NaN or did not converge."""

    code = "ranking_diverged"


class QueryExecutionError(MetricGraphError):
    """The execution engine failed a query (timeout, lost connection, bad SQL)."""

    code = "query_failed"


class InvalidInstructionError(MetricGraphError):
    """A metric instruction is malformed (missing entity, wrong types)."""

    code = "invalid_instruction"
