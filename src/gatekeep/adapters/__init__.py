"""
Adapters layer for Gatekeep.

Contains the infrastructure implementations: config files and telemetry.
"""

from gatekeep.adapters.fs import ConfigStore
from gatekeep.adapters.otel import OtelAuditSink

__all__ = [
    "ConfigStore",
    "OtelAuditSink",
]
