# This file is part of guestnet. See LICENSE file for license information.

import errno
import logging
import os
from typing import Dict, Optional

from guestnet import util

LOG = logging.getLogger(__name__)
SYS_CLASS_NET = "/sys/class/net/"


class ProbeError(RuntimeError):
    """A network manager's state could not be determined reliably."""


class TopologyError(ValueError):
    """Requested interfaces cannot be mapped onto the live instance."""


def get_sys_class_path():
    """Simple function to return the global SYS_CLASS_NET."""
    return SYS_CLASS_NET


def sys_dev_path(devname, path=""):
    return get_sys_class_path() + devname + "/" + path


def read_sys_net(devname, path, on_enoent=None):
    dev_path = sys_dev_path(devname, path)
    try:
        contents = util.load_text_file(dev_path)
    except OSError as e:
        e_errno = getattr(e, "errno", None)
        if e_errno in (errno.ENOENT, errno.ENOTDIR, errno.EINVAL):
            if on_enoent is not None:
                return on_enoent(e)
        raise
    return contents.strip()


def read_sys_net_safe(iface, field):
    def on_excp_false(e):
        return False

    return read_sys_net(iface, field, on_enoent=on_excp_false)


def is_bridge(devname):
    return os.path.exists(sys_dev_path(devname, "bridge"))


def is_bond(devname):
    return os.path.exists(sys_dev_path(devname, "bonding"))


def is_vlan(devname):
    uevent = str(read_sys_net_safe(devname, "uevent"))
    return "DEVTYPE=vlan" in uevent.splitlines()


def interface_has_own_mac(ifname):
    """return True if the provided interface has its own address.

    Based on addr_assign_type in /sys.  Return true for any interface
    that does not have a 'stolen' address. Examples of such devices
    are bonds or vlans that inherit their mac from another device."""
    assign_type = read_sys_net_safe(ifname, "addr_assign_type")
    if assign_type is False:
        return True
    # 0 = permanent, 1 = randomly generated, 3 = set using dev_set_mac_address
    return assign_type.strip() in ("0", "1", "3")


def get_devicelist():
    try:
        devs = os.listdir(get_sys_class_path())
    except OSError as e:
        if e.errno == errno.ENOENT:
            devs = []
        else:
            raise
    return devs


def get_interfaces() -> list:
    """Return list of interface tuples (name, mac)

    Bridges, bonds, vlans and any devices that have a 'stolen' mac are
    excluded."""
    ret = []
    # 16 somewhat arbitrarily chosen.  Normally a mac is 6 '00:' tokens.
    zero_mac = ":".join(("00",) * 16)
    for name in get_devicelist():
        if name == "lo":
            continue
        if not interface_has_own_mac(name):
            continue
        if is_bridge(name) or is_bond(name) or is_vlan(name):
            continue
        mac = read_sys_net_safe(name, "address")
        # some devices may not have a mac (tun0)
        if not mac or mac == zero_mac[: len(mac)]:
            continue
        ret.append((name, mac))
    return ret


def get_interfaces_by_mac() -> Dict[str, str]:
    """Build a dictionary {mac: name} of the live interfaces.

    The MAC keys are lower case."""
    ret: Dict[str, str] = {}
    for name, mac in get_interfaces():
        mac = mac.lower()
        if mac in ret:
            raise TopologyError(
                "duplicate mac found! both '%s' and '%s' have mac '%s'."
                % (name, ret[mac], mac)
            )
        ret[mac] = name
    return ret


def find_interface_name_from_mac(
    mac: str, interfaces_by_mac: Optional[Dict[str, str]] = None
) -> Optional[str]:
    if interfaces_by_mac is None:
        interfaces_by_mac = get_interfaces_by_mac()
    for interface_mac, interface_name in interfaces_by_mac.items():
        if mac.lower() == interface_mac.lower():
            return interface_name
    return None
