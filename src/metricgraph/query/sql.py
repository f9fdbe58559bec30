"""Render query descriptors as SQLAlchemy Core statements.

Statements are built from lightweight ``table()``/``column()`` constructs so
they do not depend on the application's ORM models and compile for any
dialect.

Zero-filled grouped counts render as::

    SELECT pk, attr, MAX(count) AS count FROM (
        SELECT pivot.pk, pivot.attr, COUNT(*) AS count
        FROM entity JOIN ... JOIN pivot ON ...
        GROUP BY pivot.pk, pivot.attr
      UNION ALL
        SELECT pk, attr, 0 AS count FROM pivot
    ) GROUP BY pk, attr

Each pivot row contributes exactly one zero, which never exceeds a real
count, so MAX yields the true count and keeps unmatched pivots.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import (
    ColumnElement,
    FromClause,
    Select,
    and_,
    column,
    func,
    literal_column,
    select,
    table,
    union_all,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.selectable import Alias

from metricgraph.query.compiler import ROOT_ALIAS
from metricgraph.query.models import (
    COUNT_LABEL,
    CountQuery,
    GroupedCountQuery,
    JoinStep,
    QueryDescriptor,
    ZeroFilledGroupedCountQuery,
)


def render(descriptor: QueryDescriptor) -> Select:
    """Build the SELECT statement for a descriptor."""
    if isinstance(descriptor, CountQuery):
        return select(func.count().label(COUNT_LABEL)).select_from(table(descriptor.table_name))
    if isinstance(descriptor, GroupedCountQuery):
        return _grouped_count(descriptor)
    if isinstance(descriptor, ZeroFilledGroupedCountQuery):
        return _zero_filled_grouped_count(descriptor)
    raise TypeError(f"Unsupported query descriptor: {type(descriptor).__name__}")


def to_sql(descriptor: QueryDescriptor, dialect: Dialect | None = None) -> str:
    """SQL text for a descriptor, for logging and the command line."""
    statement = render(descriptor)
    compiled = statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True})
    return str(compiled)


def _aliases(
    table_name: str,
    joins: tuple[JoinStep, ...],
    extra_columns: dict[str, set[str]],
) -> dict[str, Alias]:
    """Aliased tables declaring every column the statement references."""
    columns: dict[str, set[str]] = defaultdict(set)
    for alias, names in extra_columns.items():
        columns[alias].update(names)
    for step in joins:
        for pair in step.on:
            columns[pair.left_alias].add(pair.left_column)
            columns[step.alias].add(pair.right_column)

    table_names = {ROOT_ALIAS: table_name} | {step.alias: step.table_name for step in joins}
    return {
        alias: table(name, *(column(c) for c in sorted(columns[alias]))).alias(alias)
        for alias, name in table_names.items()
    }


def _joined(aliases: dict[str, Alias], joins: tuple[JoinStep, ...]) -> FromClause:
    joined: FromClause = aliases[ROOT_ALIAS]
    for step in joins:
        right = aliases[step.alias]
        condition = and_(
            *(aliases[p.left_alias].c[p.left_column] == right.c[p.right_column] for p in step.on)
        )
        joined = joined.join(right, condition)
    return joined


def _grouped_count(descriptor: GroupedCountQuery) -> Select:
    aliases = _aliases(
        descriptor.table_name,
        descriptor.joins,
        {descriptor.pivot_alias: {descriptor.group_by}},
    )
    key = aliases[descriptor.pivot_alias].c[descriptor.group_by]
    return (
        select(key.label(descriptor.group_by), func.count().label(COUNT_LABEL))
        .select_from(_joined(aliases, descriptor.joins))
        .group_by(key)
        .order_by(key)
    )


def _zero_filled_grouped_count(descriptor: ZeroFilledGroupedCountQuery) -> Select:
    keys = [descriptor.primary_key]
    if descriptor.pivot_attribute_name != descriptor.primary_key:
        keys.append(descriptor.pivot_attribute_name)

    aliases = _aliases(descriptor.table_name, descriptor.joins, {descriptor.pivot_alias: set(keys)})
    pivot = aliases[descriptor.pivot_alias]
    counted_keys: list[ColumnElement] = [pivot.c[k] for k in keys]
    counted = (
        select(*(c.label(k) for c, k in zip(counted_keys, keys, strict=True)))
        .add_columns(func.count().label(COUNT_LABEL))
        .select_from(_joined(aliases, descriptor.joins))
        .group_by(*counted_keys)
    )

    pivot_rows = table(descriptor.pivot_table_name, *(column(k) for k in keys)).alias("pivot_rows")
    zeros = select(*(pivot_rows.c[k].label(k) for k in keys)).add_columns(
        literal_column("0").label(COUNT_LABEL)
    )

    combined = union_all(counted, zeros).subquery("combined")
    grouped_keys = [combined.c[k] for k in keys]
    return (
        select(*grouped_keys, func.max(combined.c[COUNT_LABEL]).label(COUNT_LABEL))
        .group_by(*grouped_keys)
        .order_by(*grouped_keys)
    )
