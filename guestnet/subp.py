# This file is part of guestnet. See LICENSE file for license information.
"""Common utility functions for interacting with subprocess."""

import collections
import logging
import os
import subprocess
import time
from errno import ENOEXEC
from typing import List, Optional, Union

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10

SubpResult = collections.namedtuple("SubpResult", ["stdout", "stderr"])


class ProcessExecutionError(IOError):
    MESSAGE_TMPL = (
        "%(description)s\n"
        "Command: %(cmd)s\n"
        "Exit code: %(exit_code)s\n"
        "Reason: %(reason)s\n"
        "Stdout: %(stdout)s\n"
        "Stderr: %(stderr)s"
    )
    empty_attr = "-"

    def __init__(
        self,
        stdout=None,
        stderr=None,
        exit_code=None,
        cmd=None,
        description=None,
        reason=None,
        errno=None,
    ):
        self.cmd = cmd or self.empty_attr

        if description:
            self.description = description
        elif not exit_code and errno == ENOEXEC:
            self.description = "Exec format error. Missing #! in script?"
        else:
            self.description = "Unexpected error while running command."

        self.exit_code = (
            exit_code if isinstance(exit_code, int) else self.empty_attr
        )

        # Callers surface the raw stderr to operators, so it is kept
        # untouched and only indented inside the message.
        self.stdout = "" if stdout is None else stdout
        self.stderr = "" if stderr is None else stderr

        self.reason = reason or self.empty_attr

        message = self.MESSAGE_TMPL % {
            "description": self.description,
            "cmd": self.cmd,
            "exit_code": self.exit_code,
            "stdout": self._indent_text(self.stdout) or self.empty_attr,
            "stderr": self._indent_text(self.stderr) or self.empty_attr,
            "reason": self.reason,
        }
        IOError.__init__(self, message)
        if errno:
            self.errno = errno

    def _indent_text(self, text: str, indent_level=8) -> str:
        """
        indent text on all but the first line, allowing for easy to read output

        remove any newlines at end of text first to prevent unneeded blank
        line in output
        """
        return text.rstrip("\n").replace("\n", "\n" + " " * indent_level)


class ProcessTimeoutError(ProcessExecutionError):
    """The command did not finish in time and was killed."""


def raise_on_invalid_command(args: List[str]):
    """check argument types to ensure that subp() can run the argument

    Throw a user-friendly exception which explains the issue.

    args: list of arguments passed to subp()
    raises: ProcessExecutionError with information explaining the issue
    """
    for component in args:
        if not isinstance(component, str):
            LOG.warning("Running invalid command: %s", args)
            raise ProcessExecutionError(
                cmd=args, reason=f"Running invalid command: {args}"
            )


def subp(
    args: List[str],
    *,
    data=None,
    rcs=None,
    update_env=None,
    timeout=None,
) -> SubpResult:
    """Run a subprocess and capture its output as text.

    :param args: command to run in a list. [cmd, arg1, arg2...]
    :param data: input to the command, made available on its stdin.
    :param rcs:
        a list of allowed return codes.  If subprocess exits with a value not
        in this list, a ProcessExecutionError will be raised.
    :param update_env:
        update the environment for this command with this dictionary.
        this will not affect the current processes os.environ.
    :param timeout: maximum time in seconds for the subprocess to run.
        The child is killed and ProcessTimeoutError raised when exceeded.

    :return: (stdout, stderr) decoded as utf-8.
    """
    if rcs is None:
        rcs = [0]

    env = os.environ.copy()
    if update_env:
        env.update(update_env)

    LOG.debug(
        "Running command %s with allowed return codes %s (timeout=%s)",
        args,
        rcs,
        timeout,
    )

    if data is None:
        # using devnull assures any reads get null, rather
        # than possibly waiting on input.
        stdin: Union[int, None] = subprocess.DEVNULL
    else:
        stdin = subprocess.PIPE
        if not isinstance(data, bytes):
            data = data.encode()

    raise_on_invalid_command(args)
    try:
        before = time.monotonic()
        sp = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=stdin,
            env=env,
        )
    except OSError as e:
        raise ProcessExecutionError(
            cmd=args, reason=e, errno=e.errno
        ) from e

    try:
        out, err = sp.communicate(data, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        sp.kill()
        out, err = sp.communicate()
        raise ProcessTimeoutError(
            stdout=out.decode("utf-8", "replace"),
            stderr=err.decode("utf-8", "replace"),
            cmd=args,
            description="Command timed out.",
            reason="timed out after %ss" % timeout,
        ) from e
    except BaseException:
        # Interrupted (e.g. KeyboardInterrupt): never leave the child behind.
        sp.kill()
        sp.wait()
        raise
    total = time.monotonic() - before
    if total > 0.1:
        LOG.debug("%s took %.3ss to run", args, total)

    out = out.decode("utf-8", "replace")
    err = err.decode("utf-8", "replace")

    rc = sp.returncode
    if rc not in rcs:
        raise ProcessExecutionError(
            stdout=out, stderr=err, exit_code=rc, cmd=args
        )
    return SubpResult(out, err)


def which(program, search=None) -> Optional[str]:
    if os.path.sep in program and is_exe(program):
        # if program had a '/' in it, then do not search PATH
        return program

    if search is None:
        search = [
            p.strip('"') for p in os.environ.get("PATH", "").split(os.pathsep)
        ]
    # normalize path input
    search = [os.path.abspath(p) for p in search if p]

    for path in search:
        ppath = os.path.sep.join((path, program))
        if is_exe(ppath):
            return ppath

    return None


def is_exe(fpath):
    # return boolean indicating if fpath exists and is executable.
    return os.path.isfile(fpath) and os.access(fpath, os.X_OK)


class Runner:
    """Run the external commands a network manager needs.

    Every command is bounded by ``timeout`` seconds unless the caller asks
    for a different bound. Managers receive a Runner at construction so
    tests can hand them a fake one.
    """

    def __init__(self, timeout=DEFAULT_TIMEOUT, search=None):
        self.timeout = timeout
        self.search = search

    def run(self, args: List[str], *, timeout=None, rcs=None) -> SubpResult:
        """Run args, raising ProcessExecutionError on an unexpected rc."""
        if timeout is None:
            timeout = self.timeout
        return subp(args, rcs=rcs, timeout=timeout)

    def quiet(self, args: List[str], *, timeout=None) -> None:
        """Run args for their side effect only."""
        self.run(args, timeout=timeout)

    def which(self, program: str) -> Optional[str]:
        """Return the path of program, or None when it is not installed."""
        return which(program, search=self.search)
