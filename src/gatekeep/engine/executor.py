"""
Sandboxed executor — runs shell commands under the strongest available isolation.

Each call walks validate -> select method -> build invocation -> spawn ->
await exit or timeout -> collect. Every outcome, including rejections,
spawn failures and timeouts, is returned as a SandboxExecResult.

Sessions add a `cd` interpreter on top of one-shot execution: the working
directory persists between calls and never leaves the workspace root.
"""

from __future__ import annotations

import itertools
import logging
import os
import shlex
import signal
import time
from subprocess import DEVNULL, PIPE
from typing import TYPE_CHECKING, Any

import anyio
from pydantic import ValidationError

from gatekeep.domain.events import AuditEvent
from gatekeep.domain.exceptions import SandboxError, SessionNotFoundError
from gatekeep.domain.sandbox import (
    CommandValidation,
    SandboxExecResult,
    SandboxMethod,
    SandboxSession,
    SandboxTerminalConfig,
)
from gatekeep.engine.backends import MethodDetector, get_backend, select_method
from gatekeep.engine.events import EventBus
from gatekeep.engine.validation import validate_command

if TYPE_CHECKING:
    from anyio.abc import ByteReceiveStream, Process

logger = logging.getLogger(__name__)

SESSION_METHOD = "session"
OUTSIDE_WORKSPACE = "Cannot navigate outside workspace"

# Seconds allowed for pipes to drain after the process exits
DRAIN_GRACE = 1.0


class _CappedBuffer:
    """Accumulates bytes up to a limit and drops the rest."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.size = 0
        self.truncated = False
        self._chunks: list[bytes] = []

    def feed(self, chunk: bytes) -> None:
        room = self.limit - self.size
        if len(chunk) > room:
            self.truncated = True
            chunk = chunk[: max(room, 0)]
        if chunk:
            self._chunks.append(chunk)
            self.size += len(chunk)

    def text(self) -> str:
        return b"".join(self._chunks).decode("utf-8", errors="replace")


async def _drain(stream: ByteReceiveStream | None, buffer: _CappedBuffer) -> None:
    if stream is None:
        return
    async for chunk in stream:
        buffer.feed(chunk)


def _signal_group(process: Process, sig: signal.Signals) -> None:
    """Signal the process group led by `process`."""
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass
    except PermissionError:
        process.send_signal(sig)


def _exit_code(returncode: int | None) -> int:
    if returncode is None:
        return -1
    if returncode < 0:
        return 128 + -returncode
    return returncode


def _within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


class SandboxedExecutor:
    """
    Runs commands under an OS isolation mechanism.

    Usage:
        executor = SandboxedExecutor(SandboxTerminalConfig(workspace_root="/work"))
        result = await executor.execute("npm test", {"timeout_ms": 60_000})
        if result.timed_out:
            ...
    """

    def __init__(
        self,
        config: SandboxTerminalConfig | None = None,
        detector: MethodDetector | None = None,
        events: EventBus | None = None,
    ) -> None:
        """
        Initialize the executor.

        Mechanisms are probed lazily on the first execution and memoized.

        Args:
            config: Default sandbox configuration.
            detector: Mechanism availability probe.
            events: Bus receiving execution and session events.
        """
        self._config = config or SandboxTerminalConfig()
        self.events = events or EventBus()
        self.detector = detector or MethodDetector(events=self.events)
        self._sessions: dict[str, SandboxSession] = {}
        self._session_ids = itertools.count(1)

    # --- Configuration ---

    def get_config(self) -> SandboxTerminalConfig:
        return self._config

    def update_config(self, overrides: dict[str, Any]) -> SandboxTerminalConfig:
        """
        Apply overrides to the default configuration.

        Raises:
            SandboxError: If the resulting configuration is invalid.
        """
        try:
            self._config = self._config.merged(overrides)
        except ValidationError as e:
            raise SandboxError(f"Invalid sandbox configuration: {e}") from e
        return self._config

    # --- Mechanisms ---

    async def probe_methods(self, refresh: bool = False) -> list[SandboxMethod]:
        return await self.detector.detect(refresh=refresh)

    def get_available_methods(self) -> list[SandboxMethod]:
        return self.detector.available

    def select_method(self, requested: SandboxMethod | None = None) -> SandboxMethod:
        return select_method(requested or self._config.method, self.detector.available)

    def validate_command(
        self, command: str, config: SandboxTerminalConfig | None = None
    ) -> CommandValidation:
        return validate_command(command, (config or self._config).blocked_paths)

    # --- Execution ---

    async def execute(
        self, command: str, overrides: dict[str, Any] | None = None
    ) -> SandboxExecResult:
        """
        Execute `command` once in the workspace root.

        Args:
            command: Shell command string.
            overrides: Per-call SandboxTerminalConfig field overrides.

        Returns:
            The structured result. Never raises for rejections or failures.
        """
        try:
            config = self._config.merged(overrides)
        except ValidationError as e:
            return SandboxExecResult(stderr=f"Invalid sandbox configuration: {e}", exit_code=1)

        return await self._run(command, config, cwd=config.workspace_root)

    async def _run(
        self,
        command: str,
        config: SandboxTerminalConfig,
        cwd: str,
        session: SandboxSession | None = None,
    ) -> SandboxExecResult:
        validation = self.validate_command(command, config)
        if not validation.valid:
            logger.warning("Rejected command %r: %s", command, validation.reason)
            return SandboxExecResult(stderr=validation.reason or "", exit_code=1)

        available = await self.probe_methods()
        method = select_method(config.method, available)
        if method != config.method:
            logger.info("Sandbox method %s unavailable, using %s", config.method.value, method.value)

        sandboxed = method != SandboxMethod.NONE

        if config.dry_run:
            return SandboxExecResult(
                stdout=f"[dry-run] {method.value}: {command}\n",
                sandboxed=sandboxed,
                method=method.value,
            )

        argv = get_backend(method).build_invocation(command, config, cwd)
        env = {
            **os.environ,
            **config.env,
            "HISTFILE": "/dev/null",
            "HISTSIZE": "0",
            "HOME": config.workspace_root,
        }

        self.events.emit(
            AuditEvent.EXEC_START,
            {"command": command, "method": method.value, "session_id": session and session.id},
        )
        logger.debug("Spawning %s", shlex.join(argv))
        start = time.perf_counter()

        try:
            process = await anyio.open_process(
                argv,
                stdin=DEVNULL,
                stdout=PIPE,
                stderr=PIPE,
                cwd=cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning("Failed to spawn %s: %s", argv[0], e)
            result = SandboxExecResult(
                stderr=f"Failed to spawn process: {e}",
                exit_code=127,
                sandboxed=sandboxed,
                method=method.value,
                duration=(time.perf_counter() - start) * 1000,
            )
            self._emit_complete(command, result, session)
            return result

        if session is not None:
            session.processes.append(process)

        stdout = _CappedBuffer(config.max_output_size)
        stderr = _CappedBuffer(config.max_output_size)
        timed_out = False

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(_drain, process.stdout, stdout)
                tg.start_soon(_drain, process.stderr, stderr)

                with anyio.move_on_after(config.timeout_ms / 1000) as scope:
                    await process.wait()

                if scope.cancelled_caught:
                    timed_out = True
                    logger.warning("Command timed out after %d ms: %r", config.timeout_ms, command)
                    _signal_group(process, signal.SIGKILL)
                    await process.wait()

                # Orphaned grandchildren may keep the pipes open
                tg.cancel_scope.deadline = anyio.current_time() + DRAIN_GRACE
        finally:
            if session is not None and process in session.processes:
                session.processes.remove(process)
            await process.aclose()

        returncode = process.returncode
        result = SandboxExecResult(
            stdout=stdout.text(),
            stderr=stderr.text(),
            exit_code=_exit_code(returncode),
            timed_out=timed_out,
            killed=timed_out or (returncode is not None and returncode < 0),
            sandboxed=sandboxed,
            method=method.value,
            duration=(time.perf_counter() - start) * 1000,
        )
        if stdout.truncated or stderr.truncated:
            logger.debug("Output capped at %d bytes per stream", config.max_output_size)

        self._emit_complete(command, result, session)
        return result

    def _emit_complete(
        self, command: str, result: SandboxExecResult, session: SandboxSession | None
    ) -> None:
        logger.debug(
            "Command finished: exit=%d method=%s duration=%.0fms",
            result.exit_code,
            result.method,
            result.duration,
        )
        self.events.emit(
            AuditEvent.EXEC_COMPLETE,
            {
                "command": command,
                "exit_code": result.exit_code,
                "timed_out": result.timed_out,
                "sandboxed": result.sandboxed,
                "method": result.method,
                "duration_ms": result.duration,
                "session_id": session and session.id,
            },
        )

    # --- Sessions ---

    def create_session(self, overrides: dict[str, Any] | None = None) -> SandboxSession:
        """
        Open a session rooted at the (possibly overridden) workspace root.

        Raises:
            SandboxError: If the overrides are invalid.
        """
        try:
            config = self._config.merged(overrides)
        except ValidationError as e:
            raise SandboxError(f"Invalid sandbox configuration: {e}") from e

        root = os.path.realpath(config.workspace_root)
        config = config.model_copy(update={"workspace_root": root})
        session = SandboxSession(
            id=f"sandbox_{next(self._session_ids)}", config=config, cwd=root
        )
        self._sessions[session.id] = session

        logger.info("Created sandbox session %s in %s", session.id, root)
        self.events.emit(AuditEvent.SESSION_CREATED, {"session_id": session.id, "cwd": root})
        return session

    def get_session(self, session_id: str) -> SandboxSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def list_sessions(self) -> list[SandboxSession]:
        return list(self._sessions.values())

    async def execute_in_session(self, session_id: str, command: str) -> SandboxExecResult:
        """
        Execute `command` in a session's current directory.

        A lone `cd [dir]` is interpreted here without spawning a process.
        An unknown session id yields an exit code 1 result.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return SandboxExecResult(stderr="Session not found", exit_code=1)

        session.command_history.append(command)

        target = _cd_target(command)
        if target is not None:
            return self._change_directory(session, target)

        return await self._run(command, session.config, cwd=session.cwd, session=session)

    def _change_directory(self, session: SandboxSession, target: str) -> SandboxExecResult:
        root = session.config.workspace_root

        if target == "" or target == "~":
            resolved = root
        elif target.startswith("~/"):
            resolved = os.path.join(root, target[2:])
        else:
            resolved = os.path.join(session.cwd, target)
        resolved = os.path.realpath(resolved)

        if not _within(resolved, root):
            logger.warning("Session %s: rejected cd to %s", session.id, resolved)
            return SandboxExecResult(stderr=OUTSIDE_WORKSPACE, exit_code=1, method=SESSION_METHOD)

        if not os.path.isdir(resolved):
            return SandboxExecResult(
                stderr=f"cd: {target}: No such file or directory",
                exit_code=1,
                method=SESSION_METHOD,
            )

        session.cwd = resolved
        return SandboxExecResult(method=SESSION_METHOD)

    def close_session(self, session_id: str) -> bool:
        """
        Terminate the session's running processes and forget it.

        Returns:
            False if the session does not exist.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        for process in list(session.processes):
            if process.returncode is None:
                _signal_group(process, signal.SIGTERM)

        logger.info("Closed sandbox session %s", session_id)
        self.events.emit(
            AuditEvent.SESSION_CLOSED,
            {"session_id": session_id, "commands": len(session.command_history)},
        )
        return True

    def close_all_sessions(self) -> int:
        return sum(self.close_session(session_id) for session_id in list(self._sessions))


def _cd_target(command: str) -> str | None:
    """
    Return the target of a lone `cd [dir]` command, "" for a bare `cd`.

    Anything else, including `cd` chained with other commands, returns None
    and runs through the shell as usual.
    """
    try:
        tokens = shlex.split(command)
    except ValueError:
        return None

    if not tokens or tokens[0] != "cd" or len(tokens) > 2:
        return None
    if any(op in command for op in (";", "&", "|", "`", "$(")):
        return None
    return tokens[1] if len(tokens) == 2 else ""
