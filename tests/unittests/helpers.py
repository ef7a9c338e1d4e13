# This file is part of guestnet. See LICENSE file for license information.

import os
from contextlib import contextmanager
from typing import Dict, List, Optional

from guestnet import subp, util

NOT_FOUND = None

# Live interfaces used across the network tests, keyed by lower case mac.
IFACE0_MAC = "42:01:0a:80:00:02"
IFACE1_MAC = "42:01:0a:80:00:03"
INTERFACES_BY_MAC = {IFACE0_MAC: "iface0", IFACE1_MAC: "iface1"}


class FakeRunner:
    """Answers commands from a table instead of running them.

    @param responses: maps a command, as a tuple, to either a
        ``(stdout, stderr)`` pair or an exception to raise.
    @param paths: maps a program name to its path, None when it is not
        installed, or an exception to raise from the lookup.
    """

    def __init__(self, responses=None, paths=None):
        self.responses = dict(responses or {})
        self.paths = dict(paths or {})
        self.calls: List[List[str]] = []

    def run(self, args, *, timeout=None, rcs=None) -> subp.SubpResult:
        self.calls.append(list(args))
        key = tuple(args)
        if key not in self.responses:
            raise AssertionError("Unexpected command: %s" % (args,))
        response = self.responses[key]
        if isinstance(response, BaseException):
            raise response
        return subp.SubpResult(*response)

    def quiet(self, args, *, timeout=None) -> None:
        self.run(args, timeout=timeout)

    def which(self, program) -> Optional[str]:
        path = self.paths.get(program, NOT_FOUND)
        if isinstance(path, BaseException):
            raise path
        return path


def failed(stderr="", exit_code=1, cmd=None):
    """Return the error a command exiting non-zero raises."""
    return subp.ProcessExecutionError(
        stdout="", stderr=stderr, exit_code=exit_code, cmd=cmd
    )


def timed_out(cmd=None):
    return subp.ProcessTimeoutError(
        cmd=cmd, description="Command timed out.", reason="timed out"
    )


def populate_dir(path, files):
    if not os.path.exists(path):
        os.makedirs(path)
    ret = []
    for (name, content) in files.items():
        p = os.path.sep.join([path, name])
        util.ensure_dir(os.path.dirname(p))
        with open(p, "wb") as fp:
            if isinstance(content, bytes):
                fp.write(content)
            else:
                fp.write(content.encode("utf-8"))
        ret.append(p)

    return ret


def dir2dict(startdir, prefix=None) -> Dict[str, str]:
    flist = {}
    if prefix is None:
        prefix = startdir
    for root, _dirs, files in os.walk(startdir):
        for fname in files:
            fpath = os.path.join(root, fname)
            key = fpath[len(prefix) :].lstrip(os.path.sep)
            flist[key] = util.load_text_file(fpath)
    return flist


@contextmanager
def does_not_raise():
    """Context manager to parametrize tests raising and not raising exceptions

    Example:
    --------
    >>> @pytest.mark.parametrize(
    >>>     "example_input,expectation",
    >>>     [
    >>>         (1, does_not_raise()),
    >>>         (0, pytest.raises(ZeroDivisionError)),
    >>>     ],
    >>> )
    >>> def test_division(example_input, expectation):
    >>>     with expectation:
    >>>         assert (0 / example_input) is not None

    """
    yield
