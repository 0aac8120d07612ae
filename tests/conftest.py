"""
Pytest configuration and shared fixtures for Gatekeep tests.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from gatekeep.adapters.fs import ConfigStore
from gatekeep.domain.events import AuditEvent
from gatekeep.domain.sandbox import SandboxTerminalConfig
from gatekeep.engine.backends import MethodDetector
from gatekeep.engine.events import ALL_EVENTS, EventBus
from gatekeep.engine.executor import SandboxedExecutor
from gatekeep.engine.permission_manager import PermissionManager
from gatekeep.engine.policy_manager import PolicyManager


# --- Markers ---

def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that spawn real processes"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# --- Fixtures: Infrastructure ---

@pytest.fixture
def store(tmp_path: Path) -> ConfigStore:
    """Config store rooted in a temporary directory."""
    return ConfigStore(tmp_path)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded(events: EventBus) -> list[tuple[AuditEvent, dict[str, Any]]]:
    """Every event emitted on `events`, in order."""
    seen: list[tuple[AuditEvent, dict[str, Any]]] = []
    events.subscribe(ALL_EVENTS, lambda event, payload: seen.append((event, payload)))
    return seen


@pytest.fixture
def monday_noon() -> datetime:
    return datetime(2024, 6, 3, 12, 0)


# --- Fixtures: Managers ---

@pytest.fixture
def policy_manager(events: EventBus) -> PolicyManager:
    """In-memory policy manager with the default (coding) profile."""
    return PolicyManager(events=events)


@pytest.fixture
def permission_manager(events: EventBus) -> PermissionManager:
    """In-memory permission manager with default permissions."""
    return PermissionManager(events=events)


# --- Fixtures: Sandbox ---

@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace directory with one subdirectory."""
    root = tmp_path / "work"
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.py").write_text("print('hi')\n", encoding="utf-8")
    return root


@pytest.fixture
def no_sandbox_detector(events: EventBus) -> MethodDetector:
    """Detector on a host where no isolation tool is installed."""
    return MethodDetector(events=events, which=lambda name: None)


@pytest.fixture
def sandbox_config(workspace: Path) -> SandboxTerminalConfig:
    return SandboxTerminalConfig(
        workspace_root=str(workspace),
        shell="/bin/sh",
        timeout_ms=10_000,
    )


@pytest.fixture
def executor(
    sandbox_config: SandboxTerminalConfig,
    no_sandbox_detector: MethodDetector,
    events: EventBus,
) -> SandboxedExecutor:
    return SandboxedExecutor(sandbox_config, detector=no_sandbox_detector, events=events)
