# This file is part of guestnet. See LICENSE file for license information.

import abc
import configparser
import io
import logging
import os
from typing import Iterable, List, NamedTuple, Optional, Set, Tuple

from guestnet import settings, subp, util
from guestnet.net import ProbeError
from guestnet.net.topology import Interface, VlanInterface

LOG = logging.getLogger(__name__)

MARKER_SECTION = "GuestAgent"
MARKER_KEY = "Managed"


class Artifact(NamedTuple):
    """A configuration file this agent owns, relative to a config dir."""

    filename: str
    content: str
    mode: int = 0o644


def ini_is_owned(
    content: str, section: str = MARKER_SECTION, key: str = MARKER_KEY
) -> bool:
    """Return True if INI content has a true ``key`` in ``section``.

    Section names compare case-insensitively. Anything that does not parse
    is treated as somebody else's file.
    """
    parser = configparser.ConfigParser(strict=False, interpolation=None)
    try:
        parser.read_file(io.StringIO(content))
    except configparser.Error as e:
        LOG.debug("Ignoring unparsable configuration: %s", e)
        return False
    for name in parser.sections():
        if name.lower() != section.lower():
            continue
        try:
            return parser.getboolean(name, key, fallback=False)
        except ValueError:
            return False
    return False


class Manager(abc.ABC):
    """A network management service that can own the guest's interfaces.

    Subclasses declare their identity (NAME, DEFAULT_PRIORITY,
    DEFAULT_CONFIG_DIR), the file suffixes they write and how to reload the
    daemon, and implement probing and rendering.
    """

    NAME = ""
    DEFAULT_PRIORITY = 1
    DEFAULT_CONFIG_DIR = ""
    SUFFIXES: Tuple[str, ...] = ()
    RELOAD_CMD: List[str] = []

    def __init__(
        self,
        runner: Optional[subp.Runner] = None,
        config_dir: Optional[str] = None,
        priority: Optional[int] = None,
    ):
        self.runner = runner or subp.Runner()
        self.config_dir = config_dir or self.DEFAULT_CONFIG_DIR
        self.priority = (
            self.DEFAULT_PRIORITY if priority is None else int(priority)
        )

    @property
    def name(self) -> str:
        return self.NAME

    def __repr__(self):
        return "%s(priority=%d, config_dir=%r)" % (
            self.NAME,
            self.priority,
            self.config_dir,
        )

    @abc.abstractmethod
    def is_managing(self, iface: str) -> bool:
        """Return True if this service currently manages iface.

        Absence of the service returns False. Anything unexpected raises
        ProbeError.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def render_ethernet(
        self, interfaces: List[Interface], ipv6_interfaces: Set[str]
    ) -> List[Artifact]:
        """Render one artifact per interface.

        The content of an interface's artifact depends on that interface
        alone, so adding or removing vlans never rewrites it.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def render_vlan(
        self,
        vlan: VlanInterface,
        parent_name: str,
        parent_managed: bool = True,
    ) -> List[Artifact]:
        """Render every artifact of a single vlan device.

        @param parent_managed: False when the parent interface is configured
            by somebody else, so none of our artifacts describe it.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def is_owned_content(self, content: str) -> bool:
        """Return True if content carries this agent's ownership marker."""
        raise NotImplementedError()

    def artifact_name(self, identity: str, ext: str) -> str:
        return "%d-%s-%s.%s" % (
            self.priority,
            identity,
            settings.ARTIFACT_SUFFIX,
            ext,
        )

    def is_artifact(self, filename: str) -> bool:
        """Return True if filename looks like one of ours by name alone."""
        if filename.startswith("."):
            return False
        return filename.endswith(self.SUFFIXES)

    def owned_artifacts(self) -> Set[str]:
        """Return names of the files in config_dir that carry our marker."""
        return self._owned_in("", self.is_artifact)

    def _owned_in(self, subdir: str, is_candidate) -> Set[str]:
        """Return paths relative to config_dir of owned files in subdir."""
        dirname = os.path.join(self.config_dir, subdir)
        if not os.path.isdir(dirname):
            return set()
        owned = set()
        for filename in sorted(os.listdir(dirname)):
            if not is_candidate(filename):
                continue
            path = os.path.join(dirname, filename)
            if not os.path.isfile(path):
                continue
            try:
                content = util.load_text_file(path)
            except UnicodeDecodeError:
                LOG.debug("Ignoring undecodable file %s", path)
                continue
            if self.is_owned_content(content):
                owned.add(os.path.join(subdir, filename))
        return owned

    def reload(self) -> None:
        """Ask the daemon to pick up configuration changes."""
        if not self.RELOAD_CMD:
            return
        LOG.debug("Reloading %s configuration", self.name)
        self.runner.quiet(self.RELOAD_CMD)

    def _lookup(self, binary: str) -> bool:
        """Return True if binary is installed.

        @raises ProbeError: the lookup failed for another reason than the
            binary being absent.
        """
        try:
            path = self.runner.which(binary)
        except OSError as e:
            raise ProbeError(
                "error looking up %s path: %s" % (binary, e)
            ) from e
        if not path:
            LOG.debug("%s not found, %s not managing", binary, self.name)
            return False
        return True

    def _is_active(self, service: str) -> bool:
        try:
            self.runner.run(["systemctl", "is-active", service])
        except subp.ProcessTimeoutError as e:
            raise ProbeError(
                "timed out checking whether %s is active" % service
            ) from e
        except subp.ProcessExecutionError:
            LOG.debug("%s is not active", service)
            return False
        return True

    def _probe(self, args: List[str], errmsg: str) -> str:
        """Run a status command and return its stdout.

        @raises ProbeError: prefixed with errmsg and carrying the command's
            stderr as is.
        """
        try:
            out, _err = self.runner.run(args)
        except subp.ProcessExecutionError as e:
            detail = e.stderr or e.reason
            raise ProbeError("%s: %s" % (errmsg, detail)) from e
        return out


def ipv6_names(interfaces: Iterable[Interface]) -> Set[str]:
    return {i.name for i in interfaces if i.ipv6 and i.name}
