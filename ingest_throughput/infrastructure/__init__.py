"""
Infrastructure package for the insert throughput benchmark.

Centralizes database connectivity (the `Connector` protocol and its psycopg
implementation). Keep this layer focused on I/O and resource management,
decoupled from the engine and orchestrator.
"""

from ingest_throughput.infrastructure.db_factory import (
    Connector,
    ConnectorFactory,
    PsycopgConnector,
    create_connector,
)

__all__ = [
    "Connector",
    "ConnectorFactory",
    "PsycopgConnector",
    "create_connector",
]
