"""Command runner for executing shell commands.

This module provides the base command execution functionality used by
all specialized command modules.
"""

from __future__ import annotations

import os
import queue
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import IO

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS

from .killer import AbortReason, CommandKiller
from .types import CommandResult

OutputSink = Callable[[str], None]

_STDOUT = "stdout"
_STDERR = "stderr"


def _build_env(env: Mapping[str, str] | None) -> dict[str, str]:
    merged = os.environ.copy()
    merged.update(env or {})
    return merged


def _pump(stream: IO[str], name: str, lines: queue.Queue[tuple[str, str | None]]) -> None:
    """Forward every line of ``stream`` to ``lines``, then a None sentinel."""
    try:
        for line in iter(stream.readline, ""):
            lines.put((name, line.rstrip("\n")))
    except (OSError, ValueError) as e:
        # The pipe was closed under us after the process was killed
        logger.debug("Stopped reading {}: {}", name, e)
    finally:
        lines.put((name, None))


class CommandRunner:
    """Low-level command executor with consistent result handling.

    All specialized command modules (Helm, kubectl) use this runner for
    actual command execution. Extra environment variables passed to a
    command are layered on top of the current process environment and are
    never logged with their values.
    """

    def __init__(self, project_root: Path | None = None) -> None:
        """Initialize the command runner.

        Args:
            project_root: Commands are executed from this directory by
                default (current directory when None).
        """
        self.project_root = project_root

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        capture_output: bool = True,
        check: bool = False,
    ) -> CommandResult:
        """Execute a shell command and return structured result.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to project_root)
            env: Extra environment variables for the subprocess
            capture_output: Whether to capture stdout/stderr
            check: Whether to raise exception on non-zero exit code

        Returns:
            CommandResult with success status, output, and return code

        Raises:
            subprocess.CalledProcessError: If check=True and command fails
        """
        logger.debug("Running {} (env: {})", " ".join(cmd), sorted(env or {}))
        result = subprocess.run(
            list(cmd),
            cwd=cwd or self.project_root,
            env=_build_env(env),
            capture_output=capture_output,
            text=True,
            check=check,
        )
        return CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )

    def run_streaming(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        on_stdout: OutputSink | None = None,
        on_stderr: OutputSink | None = None,
        keep_stderr_line: Callable[[str], bool] | None = None,
        killer: CommandKiller | None = None,
    ) -> CommandResult:
        """Execute a shell command with real-time output streaming.

        Both pipes are read on background threads so that neither can fill
        up and block the process. The killer is polled on every line and at
        least once per poll interval; when it fires the process is killed and
        the result carries the abort reason.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to project_root)
            env: Extra environment variables for the subprocess
            on_stdout: Called with each stdout line
            on_stderr: Called with each stderr line
            keep_stderr_line: Filter deciding which stderr lines are kept in
                the result (all lines are still passed to on_stderr)
            killer: Abort condition (never aborts when None)

        Returns:
            CommandResult with collected output, return code and abort reason
        """
        killer = killer or CommandKiller.never()
        logger.debug("Streaming {} (env: {})", " ".join(cmd), sorted(env or {}))

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        abort_reason: AbortReason | None = None

        with subprocess.Popen(
            list(cmd),
            cwd=cwd or self.project_root,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
            env=_build_env(env),
        ) as process:
            lines: queue.Queue[tuple[str, str | None]] = queue.Queue()
            readers = [
                threading.Thread(
                    target=_pump, args=(stream, name, lines), daemon=True
                )
                for stream, name in (
                    (process.stdout, _STDOUT),
                    (process.stderr, _STDERR),
                )
                if stream is not None
            ]
            for reader in readers:
                reader.start()

            open_streams = len(readers)
            try:
                while open_streams:
                    abort_reason = killer.should_abort()
                    if abort_reason is not None:
                        logger.warning("Killing {} ({})", cmd[0], abort_reason.value)
                        break
                    try:
                        name, line = lines.get(
                            timeout=DEFAULT_CONSTANTS.KILLER_POLL_SECONDS
                        )
                    except queue.Empty:
                        continue
                    if line is None:
                        open_streams -= 1
                        continue
                    if name == _STDOUT:
                        stdout_lines.append(line)
                        if on_stdout:
                            on_stdout(line)
                    else:
                        if keep_stderr_line is None or keep_stderr_line(line):
                            stderr_lines.append(line)
                        if on_stderr:
                            on_stderr(line)
            finally:
                # A raising sink or an abort must not leave the child running
                if open_streams and process.poll() is None:
                    process.kill()
                process.wait()
                for reader in readers:
                    reader.join(timeout=DEFAULT_CONSTANTS.KILLER_POLL_SECONDS)

        returncode = process.returncode or 0
        return CommandResult(
            success=returncode == 0 and abort_reason is None,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
            returncode=returncode,
            abort_reason=abort_reason,
        )
