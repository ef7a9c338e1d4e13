# This file is part of guestnet. See LICENSE file for license information.

import io
import logging
import re
from typing import Dict, List, Set

import configobj

from guestnet.net import ProbeError, manager
from guestnet.net.manager import Artifact
from guestnet.net.topology import Interface, VlanInterface, vlan_name

LOG = logging.getLogger(__name__)

WICKED_MARKER_KEY = "GOOGLE_GUEST_AGENT_MANAGED"

# States in which wicked is in charge of an interface.
WICKED_MANAGED_STATES = ("up", "setup-in-progress")


def _make_header(sep="#"):
    lines = [
        "Created by guestnet automatically, do not edit.",
        "",
    ]
    for i in range(len(lines)):
        if lines[i]:
            lines[i] = sep + " " + lines[i]
        else:
            lines[i] = sep
    return "\n".join(lines)


def _unquote(value):
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


class ConfigMap:
    """Sysconfig like dictionary object."""

    _bool_map = {
        True: "yes",
        False: "no",
    }

    def __init__(self):
        self._conf = {}

    def __setitem__(self, key, value):
        self._conf[key] = value

    def __getitem__(self, key):
        return self._conf[key]

    def __contains__(self, key):
        return key in self._conf

    def to_string(self):
        buf = io.StringIO()
        buf.write(_make_header())
        buf.write("\n")
        for key in sorted(self._conf.keys()):
            value = self._conf[key]
            if isinstance(value, bool):
                value = self._bool_map[value]
            if not isinstance(value, str):
                value = str(value)
            buf.write("%s='%s'\n" % (key, value))
        return buf.getvalue()


def parse_ifcfg(content: str) -> Dict[str, str]:
    """Parse shell style ``KEY=value`` content into a dict.

    Surrounding quotes are stripped from values.

    @raises configobj.ConfigObjError: content is not a flat list of
        assignments.
    """
    parsed = configobj.ConfigObj(io.StringIO(content), list_values=False)
    return {key: _unquote(value) for key, value in parsed.items()}


class Manager(manager.Manager):
    """Writes sysconfig ifcfg files read by wicked."""

    NAME = "wicked"
    DEFAULT_PRIORITY = 20
    DEFAULT_CONFIG_DIR = "/etc/sysconfig/network"
    RELOAD_CMD = ["wicked", "ifreload", "all"]

    # wicked only reads files with this prefix, the priority cannot be part
    # of the name.
    PREFIX = "ifcfg-"

    def is_managing(self, iface: str) -> bool:
        if not self._lookup("wicked"):
            return False

        if not self._is_active("wicked.service"):
            return False

        out = self._probe(
            ["wicked", "ifstatus", "--brief", iface],
            "failed to check wicked interface status",
        )
        fields = out.split()
        if len(fields) != 2:
            raise ProbeError(
                "unexpected wicked ifstatus output for %s: %r" % (iface, out)
            )
        LOG.debug("%s state of %s: %s", self.name, iface, fields[1])
        return fields[1] in WICKED_MANAGED_STATES

    def artifact_name(self, identity: str, ext: str = "") -> str:
        return self.PREFIX + identity

    def is_artifact(self, filename: str) -> bool:
        if not filename.startswith(self.PREFIX):
            return False
        return not re.search(r"[~]$|\.(bak|orig|rpmnew|rpmsave)$", filename)

    def render_ethernet(
        self, interfaces: List[Interface], ipv6_interfaces: Set[str]
    ) -> List[Artifact]:
        artifacts = []
        for iface in interfaces:
            LOG.debug(
                "Rendering %s configuration for %s", self.name, iface.name
            )
            cfg = ConfigMap()
            cfg["STARTMODE"] = "hotplug"
            cfg["BOOTPROTO"] = "dhcp"
            cfg["DHCLIENT_SET_DEFAULT_ROUTE"] = iface.index == 0
            if iface.name in ipv6_interfaces:
                cfg["DHCLIENT6_MODE"] = "managed"
            if iface.mtu:
                cfg["MTU"] = iface.mtu
            cfg[WICKED_MARKER_KEY] = True
            artifacts.append(
                Artifact(self.artifact_name(iface.name), cfg.to_string())
            )
        return artifacts

    def render_vlan(
        self,
        vlan: VlanInterface,
        parent_name: str,
        parent_managed: bool = True,
    ) -> List[Artifact]:
        name = vlan_name(parent_name, vlan.vlan)
        cfg = ConfigMap()
        cfg["STARTMODE"] = "auto"
        cfg["BOOTPROTO"] = "dhcp"
        cfg["ETHERDEVICE"] = parent_name
        cfg["VLAN_ID"] = vlan.vlan
        cfg["DHCLIENT_SET_DEFAULT_ROUTE"] = False
        if vlan.ipv6:
            cfg["DHCLIENT6_MODE"] = "managed"
        if vlan.mac:
            cfg["LLADDR"] = vlan.mac.lower()
        if vlan.mtu:
            cfg["MTU"] = vlan.mtu
        cfg[WICKED_MARKER_KEY] = True
        return [Artifact(self.artifact_name(name), cfg.to_string())]

    def is_owned_content(self, content: str) -> bool:
        try:
            parsed = parse_ifcfg(content)
        except configobj.ConfigObjError as e:
            LOG.debug("Ignoring unparsable ifcfg file: %s", e)
            return False
        return parsed.get(WICKED_MARKER_KEY, "").lower() == "yes"
