"""
Sandbox backends — one argv builder per isolation mechanism.

Each backend turns a shell command plus a SandboxTerminalConfig into the
argument vector that runs it under that mechanism. Backends are pure:
they never spawn anything. Availability is established separately by
MethodDetector, which runs each backend's probe command once and
memoizes the result.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from abc import abstractmethod
from subprocess import DEVNULL
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

import anyio

from gatekeep.domain.events import AuditEvent
from gatekeep.domain.sandbox import METHOD_PRIORITY, SandboxMethod

if TYPE_CHECKING:
    from gatekeep.domain.sandbox import SandboxTerminalConfig
    from gatekeep.engine.events import EventBus

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 5.0
DOCKER_WORKDIR = "/workspace"


@runtime_checkable
class SandboxBackend(Protocol):
    """Protocol for isolation mechanisms."""

    @property
    def method(self) -> SandboxMethod:
        ...

    def supported(self) -> bool:
        """Whether the mechanism can run on this platform at all."""
        ...

    def probe_command(self) -> list[str] | None:
        """Command whose success proves the mechanism is installed, or None if always available."""
        ...

    def build_invocation(
        self, command: str, config: SandboxTerminalConfig, cwd: str
    ) -> list[str]:
        """
        Build the argument vector running `command` under this mechanism.

        Args:
            command: Shell command string, passed to `config.shell -c`.
            config: Effective sandbox configuration.
            cwd: Working directory inside the workspace.

        Returns:
            The argv to spawn.
        """
        ...


class BaseBackend:
    """
    Base class for isolation backends.

    Subclasses set `method` and `binary` and implement `build_invocation()`.
    """

    method: SandboxMethod = SandboxMethod.NONE
    binary: str = ""
    linux_only: bool = False

    def supported(self) -> bool:
        return not self.linux_only or sys.platform.startswith("linux")

    def probe_command(self) -> list[str] | None:
        return [self.binary, "--version"]

    @abstractmethod
    def build_invocation(
        self, command: str, config: SandboxTerminalConfig, cwd: str
    ) -> list[str]:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(method={self.method.value})"


class NoIsolationBackend(BaseBackend):
    """Runs the command directly under the configured shell."""

    method = SandboxMethod.NONE

    def probe_command(self) -> list[str] | None:
        return None

    def build_invocation(
        self, command: str, config: SandboxTerminalConfig, cwd: str
    ) -> list[str]:
        return [config.shell, "-c", command]


class NamespaceBackend(BaseBackend):
    """Kernel namespaces via unshare(1): private mount and PID namespaces."""

    method = SandboxMethod.NAMESPACE
    binary = "unshare"
    linux_only = True

    def probe_command(self) -> list[str] | None:
        # Same namespace flags as a real run
        return [self.binary, "--mount", "--pid", "--fork", "true"]

    def build_invocation(
        self, command: str, config: SandboxTerminalConfig, cwd: str
    ) -> list[str]:
        argv = [self.binary, "--mount", "--pid", "--fork"]
        if not config.network_enabled:
            argv.append("--net")
        return [*argv, "--", *_rlimits(config), config.shell, "-c", command]


class FirejailBackend(BaseBackend):
    """Firejail profile with a whitelisted workspace and resource limits."""

    method = SandboxMethod.FIREJAIL
    binary = "firejail"
    linux_only = True

    def build_invocation(
        self, command: str, config: SandboxTerminalConfig, cwd: str
    ) -> list[str]:
        argv = [
            self.binary,
            "--quiet",
            "--private-tmp",
            "--nogroups",
            "--nonewprivs",
            "--noroot",
            f"--timeout={_hms(config.timeout_ms)}",
            f"--rlimit-as={config.max_memory_mb * 1024 * 1024}",
            f"--rlimit-nproc={config.max_processes}",
        ]
        if not config.network_enabled:
            argv.append("--net=none")

        argv.append(f"--whitelist={config.workspace_root}")
        argv.extend(f"--whitelist={path}" for path in config.allowed_write_paths)
        argv.extend(f"--blacklist={path}" for path in _absolute(config.blocked_paths))
        argv.extend(f"--read-only={path}" for path in config.read_only_paths)

        return [*argv, "--", config.shell, "-c", command]


class BubblewrapBackend(BaseBackend):
    """bwrap(1) jail: read-only system binds, writable workspace, masked secrets."""

    method = SandboxMethod.BUBBLEWRAP
    binary = "bwrap"
    linux_only = True

    def build_invocation(
        self, command: str, config: SandboxTerminalConfig, cwd: str
    ) -> list[str]:
        argv = [
            self.binary,
            "--unshare-pid",
            "--unshare-ipc",
            "--unshare-uts",
            "--die-with-parent",
            "--new-session",
        ]
        for path in config.read_only_paths:
            if os.path.exists(path):
                argv.extend(["--ro-bind", path, path])

        argv.extend(["--dev", "/dev", "--proc", "/proc", "--tmpfs", "/tmp"])
        if not config.network_enabled:
            argv.append("--unshare-net")

        argv.extend(["--bind", config.workspace_root, config.workspace_root])
        for path in config.allowed_write_paths:
            if os.path.exists(path):
                argv.extend(["--bind", path, path])

        # Hide blocked paths that would otherwise be visible through a bind
        for path in _absolute(config.blocked_paths):
            if os.path.isdir(path):
                argv.extend(["--tmpfs", path])
            elif os.path.exists(path):
                argv.extend(["--ro-bind", "/dev/null", path])

        return [*argv, "--chdir", cwd, *_rlimits(config), config.shell, "-c", command]


class DockerBackend(BaseBackend):
    """Throwaway container with the workspace mounted at /workspace."""

    method = SandboxMethod.DOCKER
    binary = "docker"

    def build_invocation(
        self, command: str, config: SandboxTerminalConfig, cwd: str
    ) -> list[str]:
        relative = os.path.relpath(cwd, config.workspace_root)
        workdir = DOCKER_WORKDIR if relative == "." else f"{DOCKER_WORKDIR}/{relative}"

        argv = [
            self.binary,
            "run",
            "--rm",
            "-i",
            "--user",
            "1000:1000",
            "--memory",
            f"{config.max_memory_mb}m",
            "--cpus",
            f"{config.max_cpu_percent / 100:g}",
            "--pids-limit",
            str(config.max_processes),
            "--read-only",
            "--tmpfs",
            "/tmp:rw,size=64m",
            "-v",
            f"{config.workspace_root}:{DOCKER_WORKDIR}:rw",
            "-w",
            workdir,
        ]
        if not config.network_enabled:
            argv.extend(["--network", "none"])
        argv.extend(["--security-opt", "no-new-privileges", "--cap-drop", "ALL"])
        for key, value in config.env.items():
            argv.extend(["-e", f"{key}={value}"])

        return [*argv, config.docker_image, "/bin/sh", "-c", command]


BACKENDS: dict[SandboxMethod, SandboxBackend] = {
    backend.method: backend
    for backend in (
        NoIsolationBackend(),
        NamespaceBackend(),
        FirejailBackend(),
        BubblewrapBackend(),
        DockerBackend(),
    )
}


def get_backend(method: SandboxMethod) -> SandboxBackend:
    return BACKENDS[method]


def select_method(
    requested: SandboxMethod, available: list[SandboxMethod]
) -> SandboxMethod:
    """
    Pick the mechanism to run with.

    The requested method wins when available; otherwise the strongest
    available one in METHOD_PRIORITY order. NONE is always a fallback.
    """
    if requested in available:
        return requested
    for method in METHOD_PRIORITY:
        if method in available:
            return method
    return SandboxMethod.NONE


class MethodDetector:
    """
    Probes which isolation mechanisms are installed.

    Results are memoized after the first probe; `detect(refresh=True)`
    re-probes for long-running processes whose environment may change.
    """

    def __init__(
        self,
        backends: dict[SandboxMethod, SandboxBackend] | None = None,
        events: EventBus | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        """
        Initialize the detector.

        Args:
            backends: Backends to probe, keyed by method.
            events: Bus receiving the detection event.
            which: Executable lookup; a binary it cannot find is never spawned.
        """
        self.backends = backends or BACKENDS
        self.events = events
        self._which = which
        self._available: list[SandboxMethod] | None = None
        self._lock = anyio.Lock()

    @property
    def probed(self) -> bool:
        return self._available is not None

    @property
    def available(self) -> list[SandboxMethod]:
        """Last probe result in priority order; only NONE before the first probe."""
        if self._available is None:
            return [SandboxMethod.NONE]
        return list(self._available)

    async def detect(self, refresh: bool = False) -> list[SandboxMethod]:
        async with self._lock:
            if self._available is not None and not refresh:
                return list(self._available)

            found = [
                method
                for method in METHOD_PRIORITY
                if method in self.backends and await self._probe(self.backends[method])
            ]
            if SandboxMethod.NONE not in found:
                found.append(SandboxMethod.NONE)

            self._available = found
            logger.info("Available sandbox methods: %s", ", ".join(m.value for m in found))
            if self.events is not None:
                self.events.emit(
                    AuditEvent.METHODS_DETECTED, {"methods": [m.value for m in found]}
                )
            return list(found)

    async def _probe(self, backend: SandboxBackend) -> bool:
        argv = backend.probe_command()
        if argv is None:
            return True
        if not backend.supported() or self._which(argv[0]) is None:
            return False

        try:
            with anyio.fail_after(PROBE_TIMEOUT):
                result = await anyio.run_process(
                    argv, check=False, stdout=DEVNULL, stderr=DEVNULL
                )
        except (OSError, TimeoutError) as e:
            logger.debug("Probe %s failed: %s", argv[0], e)
            return False

        return result.returncode == 0


def _rlimits(config: SandboxTerminalConfig) -> list[str]:
    """prlimit(1) prefix applying the memory and process caps to the shell."""
    return [
        "prlimit",
        f"--as={config.max_memory_mb * 1024 * 1024}",
        f"--nproc={config.max_processes}",
        "--",
    ]


def _absolute(paths: list[str]) -> list[str]:
    """Expand `~` and drop duplicates, keeping order."""
    return list(dict.fromkeys(os.path.expanduser(path) for path in paths))


def _hms(timeout_ms: int) -> str:
    seconds = max(1, -(-timeout_ms // 1000))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
