#!/usr/bin/env python3
import shlex
import shutil
import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from cloudman.settings import LOGGER_NAME, NCPATH, WEB_USER

log = logging.getLogger(LOGGER_NAME)

Command = Union[str, Sequence[str]]


class CommandError(Exception):
    def __init__(self, message: str, returncode: int = 1, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


@dataclass
class CommandResult:
    rc: int
    out: str
    err: str

    @property
    def ok(self) -> bool:
        return self.rc == 0

    def text(self) -> str:
        """stdout if there is any, else stderr."""
        return (self.out or self.err).strip()


def _display(cmd: Command) -> str:
    return cmd if isinstance(cmd, str) else shlex.join(list(cmd))


def run(
    cmd: Command,
    check: bool = False,
    timeout: Optional[float] = None,
    input_text: Optional[str] = None,
) -> CommandResult:
    """
    Run a command, return (rc, stdout, stderr).
    Strings go through /bin/bash so pipes keep working; lists are exec'd directly.
    """
    shown = _display(cmd)
    try:
        proc = subprocess.run(
            cmd,
            shell=isinstance(cmd, str),
            executable="/bin/bash" if isinstance(cmd, str) else None,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        log.warning("command not found: %s", shown)
        result = CommandResult(127, "", f"(command not found) {exc}")
    except subprocess.TimeoutExpired:
        log.warning("command timed out after %ss: %s", timeout, shown)
        result = CommandResult(124, "", f"(timed out after {timeout}s)")
    else:
        result = CommandResult(proc.returncode, proc.stdout or "", proc.stderr or "")
        log.debug("exit %d: %s", result.rc, shown)

    if check and not result.ok:
        log.error("command failed (exit %d): %s", result.rc, shown)
        raise CommandError(f"{shown} failed (exit {result.rc}): {result.text()}", result.rc, result.text())
    return result


def output(cmd: Command, timeout: Optional[float] = None) -> str:
    """Stripped stdout, or "" when the command fails."""
    result = run(cmd, timeout=timeout)
    return result.out.strip() if result.ok else ""


def run_interactive(cmd: Command) -> int:
    """Let long tools (apt, certbot) draw on the terminal themselves."""
    shown = _display(cmd)
    try:
        rc = subprocess.call(cmd, shell=isinstance(cmd, str), executable="/bin/bash" if isinstance(cmd, str) else None)
    except FileNotFoundError:
        print(f"Could not find '{shown.split()[0]}'. Is it installed?")
        rc = 127
    log.debug("exit %d (interactive): %s", rc, shown)
    return rc


def check_interactive(cmd: Command) -> None:
    rc = run_interactive(cmd)
    if rc != 0:
        raise CommandError(f"{_display(cmd)} failed (exit {rc})", rc)


def have_cmd(name: str) -> bool:
    return shutil.which(name) is not None


def service_state(unit: str) -> str:
    if not have_cmd("systemctl"):
        return "n/a"
    result = run(["systemctl", "is-active", unit], timeout=5)
    return result.text() or "unknown"


def processes_running(names: Sequence[str]) -> List[str]:
    return [name for name in names if run(["pgrep", "-x", name]).ok]


def occ(*args: str, ncpath: str = NCPATH) -> List[str]:
    return ["sudo", "-u", WEB_USER, "php", f"{ncpath}/occ", *args]
