# This file is part of guestnet. See LICENSE file for license information.

import logging
import os
from typing import List, Set

import yaml

from guestnet import safeyaml
from guestnet.net import manager
from guestnet.net.manager import Artifact
from guestnet.net.topology import Interface, VlanInterface, vlan_name

LOG = logging.getLogger(__name__)

# netplan rejects unknown keys, so ownership is declared in a comment.
NETPLAN_MARKER = "# Managed by guestnet."

DHCP4_SECONDARY_OVERRIDES = {
    "use-dns": False,
    "use-domains": False,
    "use-ntp": False,
}


def _dump(section: str, entries: dict) -> str:
    body = safeyaml.dumps(
        {"network": {"version": 2, section: entries}},
        explicit_start=False,
        explicit_end=False,
        noalias=True,
    )
    return NETPLAN_MARKER + "\n" + body


class Manager(manager.Manager):
    """Writes one netplan yaml file per interface or vlan."""

    NAME = "netplan"
    DEFAULT_PRIORITY = 1
    DEFAULT_CONFIG_DIR = "/etc/netplan"
    SUFFIXES = (".yaml",)
    RELOAD_CMD = ["netplan", "apply"]

    # netplan warns about world readable configuration.
    FILE_MODE = 0o600

    def is_managing(self, iface: str) -> bool:
        if not self._lookup("netplan"):
            return False
        if not os.path.isdir(self.config_dir):
            LOG.debug(
                "%s does not exist, netplan not managing", self.config_dir
            )
            return False
        return True

    def render_ethernet(
        self, interfaces: List[Interface], ipv6_interfaces: Set[str]
    ) -> List[Artifact]:
        artifacts = []
        for iface in interfaces:
            LOG.debug(
                "Rendering %s configuration for %s", self.name, iface.name
            )
            entry: dict = {
                "match": {"name": iface.name},
                "dhcp4": True,
                "dhcp6": iface.name in ipv6_interfaces,
            }
            if iface.mtu:
                entry["mtu"] = iface.mtu
            if iface.index != 0:
                entry["dhcp4-overrides"] = dict(DHCP4_SECONDARY_OVERRIDES)
            artifacts.append(
                Artifact(
                    self.artifact_name(iface.name, "yaml"),
                    _dump("ethernets", {iface.name: entry}),
                    self.FILE_MODE,
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
        entry: dict = {
            "id": vlan.vlan,
            "link": parent_name,
            "dhcp4": True,
            "dhcp6": vlan.ipv6,
            "dhcp4-overrides": dict(DHCP4_SECONDARY_OVERRIDES),
        }
        if vlan.mac:
            entry["macaddress"] = vlan.mac.lower()
        if vlan.mtu:
            entry["mtu"] = vlan.mtu
        return [
            Artifact(
                self.artifact_name(name, "yaml"),
                _dump("vlans", {name: entry}),
                self.FILE_MODE,
            )
        ]

    def is_owned_content(self, content: str) -> bool:
        if content.split("\n", 1)[0].strip() != NETPLAN_MARKER:
            return False
        try:
            parsed = yaml.safe_load(content)
        except yaml.YAMLError as e:
            LOG.debug("Ignoring unparsable netplan configuration: %s", e)
            return False
        return isinstance(parsed, dict) and "network" in parsed
