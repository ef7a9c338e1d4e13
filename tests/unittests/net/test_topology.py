# This file is part of guestnet. See LICENSE file for license information.

from unittest import mock

import pytest

from guestnet.net import TopologyError, topology
from guestnet.net.topology import Interface, Topology, VlanInterface
from tests.unittests.helpers import IFACE0_MAC, IFACE1_MAC, INTERFACES_BY_MAC

PARENT_0 = "/computeMetadata/v1/instance/network-interfaces/0/"

METADATA = {
    "networkInterfaces": [
        {"mac": IFACE0_MAC.upper(), "mtu": 1460},
        {"mac": IFACE1_MAC, "ipv6s": ["fd20::1"]},
        {"mac": "42:01:0a:80:00:09"},
    ],
    "vlanNetworkInterfaces": {
        "0": {
            "33": {
                "mac": "42:01:0a:80:00:21",
                "parentInterface": PARENT_0,
                "vlan": 33,
                "mtu": "1500",
            },
            "22": {"mac": "42:01:0a:80:00:20", "vlan": 22, "ipv6": ["x"]},
        }
    },
}


class TestFromMetadata:
    def test_interfaces(self, caplog):
        topo = topology.from_metadata(METADATA, INTERFACES_BY_MAC)
        assert [
            Interface(IFACE0_MAC.upper(), "iface0", 0, mtu=1460),
            Interface(IFACE1_MAC, "iface1", 1, ipv6=True),
            Interface("42:01:0a:80:00:09", None, 2),
        ] == topo.interfaces
        assert topo.manage_primary_nic
        assert "No live interface found for mac 42:01:0a:80:00:09" in (
            caplog.text
        )

    def test_vlans(self):
        topo = topology.from_metadata(METADATA, INTERFACES_BY_MAC)
        assert {
            22: VlanInterface("42:01:0a:80:00:20", PARENT_0, 22, ipv6=True),
            33: VlanInterface("42:01:0a:80:00:21", PARENT_0, 33, mtu=1500),
        } == topo.vlans

    def test_empty_metadata(self):
        topo = topology.from_metadata({}, {})
        assert [] == topo.interfaces
        assert {} == topo.vlans
        assert topo.primary is None

    @mock.patch("guestnet.net.get_interfaces_by_mac")
    def test_reads_live_interfaces(self, m_by_mac):
        m_by_mac.return_value = {IFACE0_MAC: "eth0"}
        topo = topology.from_metadata(
            {"networkInterfaces": [{"mac": IFACE0_MAC}]},
            manage_primary_nic=False,
        )
        assert "eth0" == topo.primary.name
        assert not topo.manage_primary_nic
        m_by_mac.assert_called_once_with()

    @pytest.mark.parametrize(
        "metadata,message",
        (
            ({"networkInterfaces": [{"mtu": 1460}]}, "has no mac"),
            (
                {"networkInterfaces": [{"mac": IFACE0_MAC, "mtu": "big"}]},
                "invalid mtu 'big'",
            ),
            (
                {"vlanNetworkInterfaces": {"0": {"x": {"mac": IFACE0_MAC}}}},
                "invalid vlan tag 'x'",
            ),
        ),
    )
    def test_invalid_metadata(self, metadata, message):
        with pytest.raises(TopologyError, match=message):
            topology.from_metadata(metadata, INTERFACES_BY_MAC)


class TestManagedInterfaces:
    def test_unnamed_interfaces_are_skipped(self):
        topo = topology.from_metadata(METADATA, INTERFACES_BY_MAC)
        assert ["iface0", "iface1"] == [
            i.name for i in topo.managed_interfaces()
        ]

    def test_primary_not_managed(self):
        topo = topology.from_metadata(
            METADATA, INTERFACES_BY_MAC, manage_primary_nic=False
        )
        assert ["iface1"] == [i.name for i in topo.managed_interfaces()]


class TestVlanParent:
    @pytest.mark.parametrize(
        "parent,expected",
        (
            (PARENT_0, 0),
            ("/computeMetadata/v1/instance/network-interfaces/1", 1),
            ("network-interfaces/12/", 12),
        ),
    )
    def test_parent_index(self, parent, expected):
        vlan = VlanInterface(IFACE0_MAC, parent, 5)
        assert expected == topology.parent_index(vlan)

    @pytest.mark.parametrize(
        "parent",
        ("", "/computeMetadata/v1/instance/", "network-interfaces/zero/"),
    )
    def test_invalid_parent(self, parent):
        with pytest.raises(TopologyError, match="invalid parent interface"):
            topology.parent_index(VlanInterface(IFACE0_MAC, parent, 5))

    def test_resolve(self):
        topo = Topology([Interface(IFACE0_MAC, "iface0", 0)], {})
        vlan = VlanInterface("42:01:0a:80:00:20", PARENT_0, 22)
        assert "iface0" == topology.resolve_vlan_parent(
            vlan, topo, INTERFACES_BY_MAC
        )

    def test_resolve_out_of_range(self):
        topo = Topology([Interface(IFACE0_MAC, "iface0", 0)], {})
        vlan = VlanInterface(
            "42:01:0a:80:00:20", "network-interfaces/3/", 22
        )
        with pytest.raises(TopologyError, match="out of range"):
            topology.resolve_vlan_parent(vlan, topo, INTERFACES_BY_MAC)

    def test_resolve_parent_not_present(self):
        topo = Topology([Interface("42:01:0a:80:00:09", None, 0)], {})
        vlan = VlanInterface("42:01:0a:80:00:20", PARENT_0, 22)
        with pytest.raises(TopologyError, match="no interface with mac"):
            topology.resolve_vlan_parent(vlan, topo, INTERFACES_BY_MAC)

    def test_vlan_name(self):
        assert "gcp.eth0.22" == topology.vlan_name("eth0", 22)
