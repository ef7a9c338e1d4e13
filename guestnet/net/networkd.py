# This file is part of guestnet. See LICENSE file for license information.

import logging
import os
from collections import OrderedDict
from typing import Dict, List, Optional, Set

from guestnet import util
from guestnet.net import ProbeError, TopologyError, manager
from guestnet.net.manager import MARKER_KEY, MARKER_SECTION, Artifact
from guestnet.net.topology import Interface, VlanInterface, vlan_name

LOG = logging.getLogger(__name__)

# networkctl gained "status --json" in systemd 252.
NETWORKCTL_MIN_VERSION = 252

# Different systemd releases report the interface state under different
# keys, so they are tried in order.
NETWORKCTL_KEYS = ["AdministrativeState", "SetupState"]

DROPIN_SUFFIX = ".network.d"


class CfgParser:
    def __init__(self):
        self.conf_dict: Dict[str, List[str]] = OrderedDict()

    def update_section(self, sec, key, val):
        if isinstance(val, bool):
            val = "true" if val else "false"
        entries = self.conf_dict.setdefault(sec, [])
        entries.append(key + "=" + str(val))
        # remove duplicates from list
        self.conf_dict[sec] = sorted(dict.fromkeys(entries))

    def get_final_conf(self):
        contents = ""
        for k, v in sorted(self.conf_dict.items()):
            if not v:
                continue
            contents += "[" + k + "]\n"
            for e in sorted(v):
                contents += e + "\n"
            contents += "\n"

        return contents


def is_dropin(filename: str) -> bool:
    return not filename.startswith(".") and filename.endswith(".conf")


class Manager(manager.Manager):
    """
    Writes .network and .netdev units, and .network.d drop-ins attaching
    vlans to their parents, for systemd-networkd.

    Units go to /usr/lib/systemd/network so that anything an administrator
    puts in /etc/systemd/network still takes precedence.
    """

    NAME = "systemd-networkd"
    DEFAULT_PRIORITY = 1
    DEFAULT_CONFIG_DIR = "/usr/lib/systemd/network"
    SUFFIXES = (".network", ".netdev")
    RELOAD_CMD = ["networkctl", "reload"]

    def __init__(
        self,
        runner=None,
        config_dir=None,
        priority=None,
        networkctl_keys: Optional[List[str]] = None,
    ):
        super().__init__(runner, config_dir, priority)
        self.networkctl_keys = list(networkctl_keys or NETWORKCTL_KEYS)

    def is_managing(self, iface: str) -> bool:
        if not self._lookup("networkctl"):
            return False

        version = self.networkctl_version()
        if version < NETWORKCTL_MIN_VERSION:
            LOG.debug(
                "systemd %d is older than %d, %s not managing",
                version,
                NETWORKCTL_MIN_VERSION,
                self.name,
            )
            return False

        if not self._is_active("systemd-networkd.service"):
            return False

        status = self.network_status(iface)
        for key in self.networkctl_keys:
            if key in status:
                LOG.debug(
                    "%s %s of %s: %s", self.name, key, iface, status[key]
                )
                return status[key] == "configured"
        raise ProbeError(
            "could not determine interface state, one of [%s] was not"
            " present" % " ".join(self.networkctl_keys)
        )

    def network_status(self, iface: str) -> dict:
        out = self._probe(
            ["networkctl", "status", iface, "--json=short"],
            "failed to check systemd-networkd network status",
        )
        try:
            return util.load_json(out)
        except (TypeError, ValueError) as e:
            raise ProbeError(
                "failed to parse interface status: %s" % e
            ) from e

    def networkctl_version(self) -> int:
        out = self._probe(
            ["networkctl", "--version"], "error checking networkctl version"
        )
        # systemd 252 (252.22-1~deb12u1)
        fields = out.split()
        try:
            return int(fields[1])
        except (IndexError, ValueError) as e:
            raise ProbeError(
                "error parsing systemd version: %r" % out
            ) from e

    def render_ethernet(
        self, interfaces: List[Interface], ipv6_interfaces: Set[str]
    ) -> List[Artifact]:
        artifacts = []
        for iface in interfaces:
            LOG.debug(
                "Rendering %s configuration for %s", self.name, iface.name
            )
            primary = iface.index == 0
            dhcp = "yes" if iface.name in ipv6_interfaces else "ipv4"

            cfg = CfgParser()
            cfg.update_section(MARKER_SECTION, MARKER_KEY, True)
            cfg.update_section("Match", "Name", iface.name)
            cfg.update_section("Network", "DHCP", dhcp)
            cfg.update_section("Network", "DNSDefaultRoute", primary)
            if not primary:
                # Routes to DNS and NTP servers only come from the primary.
                cfg.update_section("DHCPv4", "RoutesToDNS", False)
                cfg.update_section("DHCPv4", "RoutesToNTP", False)

            artifacts.append(
                Artifact(
                    self.artifact_name(iface.name, "network"),
                    cfg.get_final_conf(),
                )
            )
        return artifacts

    def render_vlan(
        self,
        vlan: VlanInterface,
        parent_name: str,
        parent_managed: bool = True,
    ) -> List[Artifact]:
        name = vlan_name(parent_name, vlan.vlan)

        netdev = CfgParser()
        netdev.update_section(MARKER_SECTION, MARKER_KEY, True)
        netdev.update_section("NetDev", "Name", name)
        netdev.update_section("NetDev", "Kind", "vlan")
        if vlan.mac:
            netdev.update_section("NetDev", "MACAddress", vlan.mac)
        if vlan.mtu:
            netdev.update_section("NetDev", "MTUBytes", vlan.mtu)
        netdev.update_section("VLAN", "Id", vlan.vlan)

        network = CfgParser()
        network.update_section(MARKER_SECTION, MARKER_KEY, True)
        network.update_section("Match", "Name", name)
        dhcp = "yes" if vlan.ipv6 else "ipv4"
        network.update_section("Network", "DHCP", dhcp)
        network.update_section("Network", "DNSDefaultRoute", False)
        if vlan.mtu:
            network.update_section("Link", "MTUBytes", vlan.mtu)

        # Only the first matching .network file applies to a link, so the
        # vlan is attached through a drop-in of the parent's file.
        attach = CfgParser()
        attach.update_section(MARKER_SECTION, MARKER_KEY, True)
        attach.update_section("Network", "VLAN", name)
        dropin = "%s.d/%s" % (
            self.parent_network_file(parent_name, parent_managed),
            self.artifact_name(name, "conf"),
        )

        return [
            Artifact(
                self.artifact_name(name, "netdev"), netdev.get_final_conf()
            ),
            Artifact(
                self.artifact_name(name, "network"), network.get_final_conf()
            ),
            Artifact(dropin, attach.get_final_conf()),
        ]

    def parent_network_file(self, parent_name: str, managed: bool) -> str:
        """Return the name of the .network file that configures parent.

        @raises TopologyError: no .network file applies to an unmanaged
            parent.
        """
        if managed:
            return self.artifact_name(parent_name, "network")
        status = self.network_status(parent_name)
        network_file = status.get("NetworkFile")
        if not network_file:
            raise TopologyError(
                "no systemd-networkd configuration applies to %s, cannot"
                " attach vlans to it" % parent_name
            )
        LOG.debug("%s is configured by %s", parent_name, network_file)
        return os.path.basename(network_file)

    def owned_artifacts(self) -> Set[str]:
        owned = super().owned_artifacts()
        if not os.path.isdir(self.config_dir):
            return owned
        for dirname in sorted(os.listdir(self.config_dir)):
            if dirname.startswith(".") or not dirname.endswith(DROPIN_SUFFIX):
                continue
            owned.update(self._owned_in(dirname, is_dropin))
        return owned

    def is_owned_content(self, content: str) -> bool:
        return manager.ini_is_owned(content)
