"""Inbound command dispatch.

The transport delivers control-plane frames; the agent answers each command
with exactly one reply:

- ``request_schema``  -> ``schema``
- ``request_metrics`` -> ``metrics``
- ping frames         -> ``pong``

Unknown commands are logged and left unanswered. Reconnection and
supervision belong to the transport.

Usage:
    agent = Agent.from_settings(get_settings())
    reply = agent.handle({"message": {"command": "request_schema"}})
    if reply:
        transport.perform(reply.action, message=reply.message)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import create_engine

from metricgraph.core.config import Settings
from metricgraph.core.logging import get_logger, log_context
from metricgraph.core.models.base import Result
from metricgraph.entities.provider import (
    MetadataLoadError,
    MetadataProvider,
    SQLAlchemyMetadataProvider,
    load_registry,
)
from metricgraph.query.execution import QueryExecutor, SQLAlchemyQueryExecutor
from metricgraph.service import compute_metrics, describe_schema

logger = get_logger(__name__)


@dataclass
class Reply:
    """Outbound frame: an action name and its payload."""

    action: str
    message: dict[str, Any] = field(default_factory=dict)


def authorization_headers(settings: Settings) -> dict[str, str] | None:
    """Headers identifying this agent, or None when no project key is configured."""
    if not settings.project_key:
        logger.warning("missing_project_key", hint="set METRICGRAPH_PROJECT_KEY")
        return None
    return {"Authorization": f"Bearer {settings.project_key}"}


def _payload(result: Result[Any]) -> dict[str, Any]:
    if not result.success or result.value is None:
        return {"error": result.error}
    payload: dict[str, Any] = result.value.model_dump(mode="json")
    if result.warnings:
        payload["warnings"] = result.warnings
    return payload


class Agent:
    """Maps control-plane commands onto schema and metric requests."""

    def __init__(self, provider: MetadataProvider, executor: QueryExecutor):
        self.provider = provider
        self.executor = executor

    @classmethod
    def from_settings(cls, settings: Settings) -> Agent:
        """Wire an agent to the configured database and model registry."""
        if not settings.models:
            raise MetadataLoadError("No model registry configured (METRICGRAPH_MODELS)")
        engine = create_engine(settings.database_url)
        return cls(
            provider=SQLAlchemyMetadataProvider(load_registry(settings.models), engine),
            executor=SQLAlchemyQueryExecutor(engine, settings.statement_timeout_ms),
        )

    def handle(self, data: Mapping[str, Any]) -> Reply | None:
        """Answer one received frame."""
        if data.get("type") == "ping":
            return self.pong(data)

        message = data.get("message", data)
        if not isinstance(message, Mapping):
            logger.warning("malformed_frame", frame=str(data)[:200])
            return None

        command = message.get("command")
        with log_context(command=command):
            logger.debug("command_received")

            if command == "request_schema":
                reply: Reply | None = Reply("schema", _payload(describe_schema(self.provider)))
            elif command == "request_metrics":
                instructions = message.get("instructions")
                result = compute_metrics(self.provider, self.executor, instructions)
                reply = Reply("metrics", _payload(result))
            else:
                logger.warning("unknown_command")
                return None

            logger.debug("command_completed")
            return reply

    def pong(self, data: Mapping[str, Any] | None = None) -> Reply:
        """Reply to a keep-alive ping."""
        logger.debug("pinged", data=data)
        return Reply("pong")
