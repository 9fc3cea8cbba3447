"""Subprocess management with hard timeouts."""

import asyncio
import logging
import os
import shlex
import signal
from pathlib import Path

logger = logging.getLogger(__name__)


class SubprocessError(Exception):
    """Subprocess execution error."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.timed_out = timed_out


class SubprocessManager:
    """Managed subprocess execution with a hard timeout."""

    @staticmethod
    async def _terminate_process(
        process: asyncio.subprocess.Process,
        timeout_sec: float = 2.0,
    ) -> None:
        """Terminate a subprocess and its children (best-effort).

        Agent CLIs spawn helper processes. On POSIX the child runs in its own
        session so the whole process group is signalled.
        """
        if process.returncode is not None:
            return

        for sig in (signal.SIGTERM, signal.SIGKILL):
            try:
                if os.name != "nt":
                    os.killpg(process.pid, sig)
                elif sig == signal.SIGTERM:
                    process.terminate()
                else:
                    process.kill()
            except ProcessLookupError:
                return
            except OSError as e:
                logger.debug(f"Signal {sig} to PID={process.pid} failed: {e}")

            try:
                await asyncio.wait_for(process.wait(), timeout=timeout_sec)
                return
            except TimeoutError:
                continue

        logger.warning(f"Process {process.pid} did not exit after SIGKILL")

    def __init__(self, timeout_sec: float, log_dir: Path | None = None):
        """Initialize subprocess manager.

        Args:
            timeout_sec: Hard timeout for process
            log_dir: Directory for process output logs
        """
        self.timeout_sec = timeout_sec
        self.log_dir = log_dir

    async def run(
        self,
        command: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        stdin: str | None = None,
    ) -> dict:
        """Run command with timeout.

        Args:
            command: Command and arguments
            cwd: Working directory
            env: Environment variables
            stdin: Optional string to write to stdin

        Returns:
            Result dict with keys:
                - success: bool
                - output: str (stdout)
                - stderr: str
                - exit_code: int | None
                - timed_out: bool

        Raises:
            SubprocessError: If the process cannot be started
        """
        logger.debug("Running command: %s", self._format_command_for_log(command))

        process: asyncio.subprocess.Process | None = None
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd,
                env=env,
                start_new_session=(os.name != "nt"),
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            # Either the executable is missing from PATH or the cwd does not exist.
            if cwd is not None and not Path(cwd).exists():
                raise SubprocessError(
                    f"Working directory not found: {cwd} (while running: {command[0]})"
                )
            raise SubprocessError(f"Command not found: {command[0]}")
        except OSError as e:
            raise SubprocessError(f"Subprocess error: {e}")

        input_bytes = stdin.encode("utf-8") if stdin is not None else None
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input=input_bytes),
                timeout=self.timeout_sec,
            )
        except TimeoutError:
            logger.warning(
                f"Command timed out after {self.timeout_sec}s: {command[0]} (PID={process.pid})"
            )
            await self._terminate_process(process)
            return {
                "success": False,
                "output": "",
                "stderr": "",
                "exit_code": None,
                "timed_out": True,
            }
        except asyncio.CancelledError:
            # Do not leak the child when the awaiting task is cancelled.
            await self._terminate_process(process)
            raise

        output = stdout.decode("utf-8", errors="replace")
        error_output = stderr.decode("utf-8", errors="replace")
        exit_code = process.returncode

        if self.log_dir:
            self._write_log(command, output, error_output)

        logger.debug(f"Command completed: exit_code={exit_code}")

        return {
            "success": exit_code == 0,
            "output": output,
            "stderr": error_output,
            "exit_code": exit_code,
            "timed_out": False,
        }

    def _write_log(self, command: list[str], output: str, error_output: str) -> None:
        """Append command output to the per-manager log file."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.log_dir / "commands.log"
        with open(log_path, "a") as f:
            f.write(f"$ {self._format_command_for_log(command)}\n")
            f.write(output)
            if error_output:
                f.write(error_output)
            f.write("\n")

    @staticmethod
    def _format_command_for_log(command: list[str]) -> str:
        """Format a command for logs without dumping huge arguments."""
        if not command:
            return ""

        parts: list[str] = []
        max_args = 12
        max_arg_len = 200
        for i, arg in enumerate(command):
            if i >= max_args:
                parts.append("...")
                break
            if len(arg) > max_arg_len:
                arg = arg[:max_arg_len] + "..."
            parts.append(shlex.quote(arg))
        return " ".join(parts)
