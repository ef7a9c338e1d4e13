# This file is part of guestnet. See LICENSE file for license information.

import configparser
import io
import logging
import uuid
from typing import List, Set

from guestnet.net import manager
from guestnet.net.manager import Artifact
from guestnet.net.topology import Interface, VlanInterface, vlan_name

LOG = logging.getLogger(__name__)

NM_MARKER_SECTION = "guest-agent"
NM_MARKER_KEY = "managed"

# Namespace for the connection UUIDs, so a profile keeps its UUID (and
# its file keeps its bytes) from one pass to the next.
GUEST_AGENT_NM_UUID = uuid.UUID("9d1a0f1c-3e5f-4d8e-a3e4-6f1f0a4a2c77")


class NMConnection:
    """Represents a NetworkManager connection profile."""

    def __init__(self, con_id):
        self.config = configparser.ConfigParser(interpolation=None)
        # Identity option name mapping, to achieve case sensitivity
        self.config.optionxform = str

        self.config["connection"] = {
            "id": f"google-guest-agent-{con_id}",
            "uuid": str(uuid.uuid5(GUEST_AGENT_NM_UUID, con_id)),
        }

    def _set_ip(self, primary, ipv6):
        self.config["ipv4"] = {"method": "auto"}
        if not primary:
            # Secondary NICs must not take over the default route or DNS.
            self.config["ipv4"]["never-default"] = "true"
            self.config["ipv4"]["ignore-auto-dns"] = "true"
        self.config["ipv6"] = {"method": "auto" if ipv6 else "disabled"}
        if ipv6 and not primary:
            self.config["ipv6"]["never-default"] = "true"
            self.config["ipv6"]["ignore-auto-dns"] = "true"

    def render_ethernet(self, iface: Interface, ipv6: bool):
        self.config["connection"]["type"] = "ethernet"
        self.config["connection"]["interface-name"] = iface.name
        self.config["ethernet"] = {}
        if iface.mtu:
            self.config["ethernet"]["mtu"] = str(iface.mtu)
        self._set_ip(iface.index == 0, ipv6)

    def render_vlan(self, vlan: VlanInterface, name: str, parent_name: str):
        self.config["connection"]["type"] = "vlan"
        self.config["connection"]["interface-name"] = name
        self.config["vlan"] = {"id": str(vlan.vlan), "parent": parent_name}
        if vlan.mac or vlan.mtu:
            self.config["ethernet"] = {}
            if vlan.mac:
                self.config["ethernet"]["cloned-mac-address"] = (
                    self.mac_addr(vlan.mac)
                )
            if vlan.mtu:
                self.config["ethernet"]["mtu"] = str(vlan.mtu)
        self._set_ip(False, vlan.ipv6)

    @staticmethod
    def mac_addr(addr):
        """
        Sanitize a MAC address.
        """
        return addr.replace("-", ":").upper()

    def dump(self):
        """
        Stringify.
        """
        self.config[NM_MARKER_SECTION] = {NM_MARKER_KEY: "true"}

        buf = io.StringIO()
        self.config.write(buf, space_around_delimiters=False)
        header = "# Generated by guestnet. Changes will be lost.\n\n"
        return header + buf.getvalue()


class Manager(manager.Manager):
    """Writes NetworkManager keyfile connection profiles."""

    NAME = "NetworkManager"
    DEFAULT_PRIORITY = 10
    DEFAULT_CONFIG_DIR = "/etc/NetworkManager/system-connections"
    SUFFIXES = (".nmconnection",)
    RELOAD_CMD = ["nmcli", "connection", "reload"]

    # NetworkManager refuses keyfiles readable by others.
    FILE_MODE = 0o600

    def is_managing(self, iface: str) -> bool:
        if not self._lookup("nmcli"):
            return False

        if not self._is_active("NetworkManager.service"):
            return False

        out = self._probe(
            ["nmcli", "-t", "-f", "DEVICE,STATE", "device", "status"],
            "failed to check NetworkManager device status",
        )
        for line in out.splitlines():
            device, sep, state = line.partition(":")
            if sep and device == iface:
                LOG.debug("%s state of %s: %s", self.name, iface, state)
                return state == "connected"
        LOG.debug("%s does not list %s", self.name, iface)
        return False

    def render_ethernet(
        self, interfaces: List[Interface], ipv6_interfaces: Set[str]
    ) -> List[Artifact]:
        artifacts = []
        for iface in interfaces:
            LOG.debug("Rendering %s profile for %s", self.name, iface.name)
            conn = NMConnection(iface.name)
            conn.render_ethernet(iface, iface.name in ipv6_interfaces)
            artifacts.append(
                Artifact(
                    self.artifact_name(iface.name, "nmconnection"),
                    conn.dump(),
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
        conn = NMConnection(name)
        conn.render_vlan(vlan, name, parent_name)
        return [
            Artifact(
                self.artifact_name(name, "nmconnection"),
                conn.dump(),
                self.FILE_MODE,
            )
        ]

    def is_owned_content(self, content: str) -> bool:
        return manager.ini_is_owned(content, NM_MARKER_SECTION, NM_MARKER_KEY)
