# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Execution of docker and docker compose processes.
"""
import logging
import os
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, IO, List, Optional

from ..errors import EngineUnavailable

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome of one finished process."""

    args: List[str]
    return_code: int
    stdout: str = ""
    stderr_lines: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.return_code == 0


def _drain(stream: IO[str], sink: Callable[[str], None]) -> None:
    for line in iter(stream.readline, ''):
        sink(line.rstrip('\n'))
    stream.close()


class ProcessRunner:
    """
    Runs a command to completion.

    Both output pipes are drained on their own thread and both threads are
    joined before the exit status is read, so a full pipe cannot block the child.
    """
    def __init__(self, name: str, out: Optional[IO[str]] = None, err: Optional[IO[str]] = None):
        """
        Args:
            name (str): Label used in log messages.
            out (Optional[IO[str]]): Where forwarded stdout goes. Defaults to sys.stdout.
            err (Optional[IO[str]]): Where forwarded stderr goes. Defaults to sys.stderr.
        """
        self.name = name
        self.out = out
        self.err = err

    def _spawn(self, command: List[str], env: Optional[Dict[str, str]], working_dir: Optional[str], **kwargs):
        logger.debug(f"[{self.name}] Starting command: {' '.join(command)}")
        try:
            return subprocess.Popen(
                command,
                env=env,
                cwd=working_dir,
                # Avoid shell=True for security reasons (CWE-78)
                shell=False,
                **kwargs
            )
        except FileNotFoundError as e:
            raise EngineUnavailable(f"{command[0]} is not installed or available in the current PATH") from e
        except OSError as e:
            raise EngineUnavailable(f"Error trying to start {command[0]}: {e}") from e

    def run(self,
            command: List[str],
            env: Optional[Dict[str, str]] = None,
            working_dir: Optional[str] = None,
            capture_stdout: bool = True) -> ProcessResult:
        """
        Runs the command and waits for it.

        Args:
            command (List[str]): Command and arguments to execute.
            env (Optional[Dict[str, str]]): Environment for the process.
            working_dir (Optional[str]): Directory to start the process in.
            capture_stdout (bool): Collect stdout into the result instead of forwarding it.

        Returns:
            ProcessResult: Exit status and captured output. stderr is always forwarded.
        """
        out = self.out or sys.stdout
        err = self.err or sys.stderr
        stdout_lines: List[str] = []
        stderr_lines: List[str] = []

        def on_stdout(line: str) -> None:
            if capture_stdout:
                stdout_lines.append(line)
            else:
                out.write(line + "\n")
                out.flush()

        def on_stderr(line: str) -> None:
            stderr_lines.append(line)
            err.write(line + "\n")
            err.flush()

        process = self._spawn(
            command, env, working_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
        )
        workers = [
            threading.Thread(target=_drain, args=(process.stdout, on_stdout), daemon=True),
            threading.Thread(target=_drain, args=(process.stderr, on_stderr), daemon=True),
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()
        return_code = process.wait()
        return ProcessResult(
            args=list(command),
            return_code=return_code,
            stdout="\n".join(stdout_lines),
            stderr_lines=stderr_lines,
        )

    def run_tty(self,
                command: List[str],
                env: Optional[Dict[str, str]] = None,
                working_dir: Optional[str] = None) -> ProcessResult:
        """
        Runs the command attached to a pseudo-terminal and copies its output to
        the operator's terminal as it arrives.

        Falls back to run() with forwarded output when no pseudo-terminal is available.
        """
        try:
            import pty
            master_fd, slave_fd = pty.openpty()
        except (ImportError, OSError):
            return self.run(command, env=env, working_dir=working_dir, capture_stdout=False)

        try:
            process = self._spawn(
                command, env, working_dir,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                close_fds=True,
            )
        finally:
            os.close(slave_fd)

        out = self.out or sys.stdout
        try:
            while True:
                try:
                    data = os.read(master_fd, 4096)
                except OSError:
                    # EIO once the child closes its side of the terminal
                    break
                if not data:
                    break
                out.write(data.decode(errors="replace"))
                out.flush()
        finally:
            os.close(master_fd)
        return ProcessResult(args=list(command), return_code=process.wait())
