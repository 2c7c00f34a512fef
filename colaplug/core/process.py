"""External process execution.

Everything that shells out (``tar``, ``zip``, ``oras``, ``git``) goes
through a :class:`ProcessExecutor`, so packaging and publishing logic can
be exercised with a fake executor in tests.
"""

from __future__ import annotations

import abc
import os
import pathlib
import subprocess
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Union

import structlog

from colaplug.utils.exceptions import ProcessError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a finished process."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessExecutor(abc.ABC):
    """Capability for running external commands."""

    @abc.abstractmethod
    def run(
            self,
            args: Sequence[str],
            cwd: Optional[Union[str, pathlib.Path]] = None,
            input: Optional[str] = None,
            env: Optional[Mapping[str, str]] = None,
            check: bool = True,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            args: Command and arguments
            cwd: Working directory for the command
            input: Text fed to the command's stdin
            env: Extra environment variables, merged over the current environment
            check: Raise ProcessError when the command exits non-zero

        Returns:
            The finished process result

        Raises:
            ProcessError: If check is set and the command fails
        """


class SubprocessExecutor(ProcessExecutor):
    """Runs commands with :func:`subprocess.run`."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    def run(
            self,
            args: Sequence[str],
            cwd: Optional[Union[str, pathlib.Path]] = None,
            input: Optional[str] = None,
            env: Optional[Mapping[str, str]] = None,
            check: bool = True,
    ) -> ProcessResult:
        command = [str(arg) for arg in args]
        full_env: Optional[Dict[str, str]] = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        logger.debug("Running command", command=command[0], cwd=str(cwd) if cwd else None)

        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                input=input,
                env=full_env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ProcessError(
                f"Command not found: {command[0]}", command=command, returncode=None
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ProcessError(
                f"Command timed out after {self.timeout}s: {command[0]}", command=command
            ) from e

        result = ProcessResult(completed.returncode, completed.stdout or "", completed.stderr or "")
        if check and not result.ok:
            raise ProcessError(
                f"Command failed with exit code {result.returncode}: {' '.join(command[:2])}"
                + (f": {result.stderr.strip()}" if result.stderr.strip() else ""),
                command=command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result
