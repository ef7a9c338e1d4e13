# This file is part of guestnet. See LICENSE file for license information.

import logging
import os
from typing import Dict, List, Mapping, Optional, Type

from guestnet import subp
from guestnet.net import netplan, network_manager, networkd, wicked
from guestnet.net.manager import Manager
from guestnet.net.reconcile import Reconciler
from guestnet.net.topology import Topology

LOG = logging.getLogger(__name__)

NAME_TO_MANAGER: Dict[str, Type[Manager]] = {
    "netplan": netplan.Manager,
    "systemd-networkd": networkd.Manager,
    "NetworkManager": network_manager.Manager,
    "wicked": wicked.Manager,
}

# Declaration order, which breaks ties between equal priorities. netplan
# drives systemd-networkd, so it has to be asked first.
DEFAULT_PRIORITY = [
    "netplan",
    "systemd-networkd",
    "NetworkManager",
    "wicked",
]


def build_managers(
    cfg: Optional[Mapping] = None, runner: Optional[subp.Runner] = None
) -> List[Manager]:
    """Instantiate the managers named in cfg, sorted by priority.

    @param cfg: the ``network`` section of the configuration. ``priority``
        lists the managers to consider in tie-break order and ``managers``
        overrides the config_dir or priority of individual managers.
    @raises ValueError: cfg names an unknown manager.
    """
    cfg = cfg or {}
    priority = cfg.get("priority") or DEFAULT_PRIORITY
    overrides = cfg.get("managers") or {}

    unknown = [i for i in priority if i not in NAME_TO_MANAGER]
    unknown.extend(i for i in overrides if i not in NAME_TO_MANAGER)
    if unknown:
        raise ValueError(
            "Unknown network managers provided in configuration: %s" % unknown
        )

    if runner is None:
        runner = subp.Runner(
            timeout=cfg.get("command_timeout", subp.DEFAULT_TIMEOUT)
        )

    found = []
    for name in priority:
        override = overrides.get(name) or {}
        found.append(
            NAME_TO_MANAGER[name](
                runner=runner,
                config_dir=override.get("config_dir"),
                priority=override.get("priority"),
            )
        )
    # sorted() is stable, equal priorities keep their declaration order.
    return sorted(found, key=lambda m: m.priority)


def select_manager(managers: List[Manager], iface: str) -> Optional[Manager]:
    """Return the first manager that is managing iface, or None.

    A probe error is propagated as is, lower priority managers are not
    consulted after one.
    """
    for mgr in managers:
        LOG.debug("Checking whether %s is managing %s", mgr.name, iface)
        if mgr.is_managing(iface):
            LOG.info("Using network manager %s for %s", mgr.name, iface)
            return mgr
    LOG.info("No network manager is managing %s", iface)
    return None


def rollback_all(
    managers: List[Manager], exclude: Optional[Manager] = None
) -> Dict[str, List[str]]:
    """Remove the artifacts we own from every manager but exclude."""
    removed = {}
    for mgr in managers:
        if mgr is exclude:
            continue
        if not os.path.isdir(mgr.config_dir):
            continue
        removed[mgr.name] = Reconciler(mgr).rollback()
    return removed


def setup_interfaces(
    managers: List[Manager],
    topology: Topology,
    interfaces_by_mac: Optional[Dict[str, str]] = None,
) -> Optional[Manager]:
    """Configure topology with whichever manager owns the primary NIC.

    Artifacts previously written for any other manager are removed first.
    Returns the manager used, None when no manager is managing the primary
    NIC or the primary NIC is not present.
    """
    primary = topology.primary
    if primary is None or primary.name is None:
        LOG.warning("Primary network interface not found, nothing to do")
        return None

    selected = select_manager(managers, primary.name)
    if selected is None:
        return None

    rollback_all(managers, exclude=selected)
    result = Reconciler(selected, interfaces_by_mac).setup(topology)
    LOG.info(
        "Configured %s: %d written, %d removed, %d unchanged",
        selected.name,
        len(result.written),
        len(result.removed),
        len(result.unchanged),
    )
    return selected
