# This file is part of guestnet. See LICENSE file for license information.
"""Interfaces and VLANs the instance should have configured.

A Topology is rebuilt from fresh metadata on every pass. Ethernet
interfaces keep the order the metadata server reports them in; the first
one is the primary NIC.
"""

import logging
import re
from typing import Dict, List, Mapping, NamedTuple, Optional

from guestnet import net
from guestnet.net import TopologyError

LOG = logging.getLogger(__name__)

# Matches ".../network-interfaces/{index}/" in a VLAN's parentInterface.
_PARENT_RE = re.compile(r"network-interfaces/(?P<index>[^/]*)/?$")


class Interface(NamedTuple):
    mac: str
    # OS-assigned name, None when no live interface carries the MAC.
    name: Optional[str]
    index: int
    ipv6: bool = False
    mtu: Optional[int] = None


class VlanInterface(NamedTuple):
    mac: str
    parent_interface: str
    vlan: int
    mtu: Optional[int] = None
    ipv6: bool = False


class Topology(NamedTuple):
    interfaces: List[Interface]
    vlans: Dict[int, VlanInterface]
    manage_primary_nic: bool = True

    @property
    def primary(self) -> Optional[Interface]:
        return self.interfaces[0] if self.interfaces else None

    def managed_interfaces(self) -> List[Interface]:
        """Ethernet interfaces that get an artifact written."""
        managed = []
        for iface in self.interfaces:
            if iface.index == 0 and not self.manage_primary_nic:
                continue
            if iface.name is None:
                continue
            managed.append(iface)
        return managed


def vlan_name(parent_name: str, tag: int) -> str:
    return "gcp.%s.%d" % (parent_name, tag)


def parent_index(vlan: VlanInterface) -> int:
    match = _PARENT_RE.search(vlan.parent_interface)
    if not match:
        raise TopologyError(
            "invalid parent interface %r for vlan %d"
            % (vlan.parent_interface, vlan.vlan)
        )
    try:
        return int(match.group("index"))
    except ValueError as e:
        raise TopologyError(
            "invalid parent interface index %r for vlan %d"
            % (match.group("index"), vlan.vlan)
        ) from e


def resolve_vlan_parent(
    vlan: VlanInterface,
    topology: Topology,
    interfaces_by_mac: Optional[Dict[str, str]] = None,
) -> str:
    """Return the OS name of the interface vlan is attached to.

    @raises TopologyError: the parent index is outside the ethernet list or
        no live interface has the parent's MAC address.
    """
    index = parent_index(vlan)
    if index < 0 or index >= len(topology.interfaces):
        raise TopologyError(
            "parent index %d of vlan %d is out of range, %d interfaces known"
            % (index, vlan.vlan, len(topology.interfaces))
        )
    parent = topology.interfaces[index]
    name = net.find_interface_name_from_mac(parent.mac, interfaces_by_mac)
    if name is None:
        raise TopologyError(
            "no interface with mac %s found for parent of vlan %d"
            % (parent.mac, vlan.vlan)
        )
    return name


def _is_ipv6(entry: Mapping) -> bool:
    return bool(entry.get("ipv6s") or entry.get("ipv6"))


def _mtu(entry: Mapping) -> Optional[int]:
    mtu = entry.get("mtu")
    if mtu in (None, ""):
        return None
    try:
        return int(mtu)
    except (TypeError, ValueError) as e:
        raise TopologyError("invalid mtu %r" % (mtu,)) from e


def from_metadata(
    metadata: Mapping,
    interfaces_by_mac: Optional[Dict[str, str]] = None,
    manage_primary_nic: bool = True,
) -> Topology:
    """Build a Topology from instance metadata.

    @param metadata: the instance metadata mapping. ``networkInterfaces``
        is a list of ``{mac, ipv6s, mtu}`` and ``vlanNetworkInterfaces``
        maps a parent index to a mapping of tag to
        ``{mac, parentInterface, vlan, mtu, ipv6s}``.
    @param interfaces_by_mac: live ``{mac: name}`` map, read from sysfs when
        not given.
    """
    if interfaces_by_mac is None:
        interfaces_by_mac = net.get_interfaces_by_mac()

    interfaces = []
    for index, entry in enumerate(metadata.get("networkInterfaces") or []):
        mac = entry.get("mac")
        if not mac:
            raise TopologyError("network interface %d has no mac" % index)
        name = net.find_interface_name_from_mac(mac, interfaces_by_mac)
        if name is None:
            LOG.warning(
                "No live interface found for mac %s (network interface %d)",
                mac,
                index,
            )
        interfaces.append(
            Interface(
                mac=mac,
                name=name,
                index=index,
                ipv6=_is_ipv6(entry),
                mtu=_mtu(entry),
            )
        )

    vlans: Dict[int, VlanInterface] = {}
    by_parent = metadata.get("vlanNetworkInterfaces") or {}
    for parent, by_tag in sorted(by_parent.items()):
        for tag, entry in sorted(by_tag.items()):
            try:
                vlan = int(entry.get("vlan", tag))
            except (TypeError, ValueError) as e:
                raise TopologyError("invalid vlan tag %r" % (tag,)) from e
            vlans[vlan] = VlanInterface(
                mac=entry.get("mac", ""),
                parent_interface=entry.get(
                    "parentInterface",
                    "/computeMetadata/v1/instance/network-interfaces/%s/"
                    % parent,
                ),
                vlan=vlan,
                mtu=_mtu(entry),
                ipv6=_is_ipv6(entry),
            )

    return Topology(
        interfaces=interfaces,
        vlans=vlans,
        manage_primary_nic=manage_primary_nic,
    )
