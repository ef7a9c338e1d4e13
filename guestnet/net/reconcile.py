# This file is part of guestnet. See LICENSE file for license information.
"""Make a manager's config directory match a Topology.

A pass renders every artifact in memory first, so a topology error leaves
the directory untouched. Writes then go out one descriptor at a time and a
descriptor whose write fails is restored to its previous state. Owned files
that were not rendered are removed last.
"""

import logging
import os
from typing import Dict, List, NamedTuple, Optional, Set, Tuple

from guestnet import atomic_helper, net, util
from guestnet.net import TopologyError
from guestnet.net.manager import Artifact, Manager, ipv6_names
from guestnet.net.topology import Topology, resolve_vlan_parent

LOG = logging.getLogger(__name__)

# (content, mode) of a file before a pass touched it, None if it was absent.
_Snapshot = Optional[Tuple[bytes, int]]


class ReconcileResult(NamedTuple):
    written: List[str]
    removed: List[str]
    unchanged: List[str]
    # Files we rendered but refused to replace because we do not own them.
    skipped: List[str]

    @property
    def changed(self) -> bool:
        return bool(self.written or self.removed)


class Reconciler:
    def __init__(
        self,
        manager: Manager,
        interfaces_by_mac: Optional[Dict[str, str]] = None,
    ):
        self.manager = manager
        self.interfaces_by_mac = interfaces_by_mac

    def _path(self, filename: str) -> str:
        return os.path.join(self.manager.config_dir, filename)

    def render(self, topology: Topology) -> List[List[Artifact]]:
        """Return the artifacts for topology grouped in write units.

        Each ethernet interface is a unit of one artifact, each vlan a unit
        of all of its artifacts.

        @raises TopologyError: a vlan parent cannot be resolved, or two
            artifacts would share a file name.
        """
        interfaces_by_mac = self.interfaces_by_mac
        if topology.vlans and interfaces_by_mac is None:
            interfaces_by_mac = net.get_interfaces_by_mac()

        interfaces = topology.managed_interfaces()
        managed_names = {i.name for i in interfaces}
        units = [
            [artifact]
            for artifact in self.manager.render_ethernet(
                interfaces, ipv6_names(interfaces)
            )
        ]
        for tag in sorted(topology.vlans):
            vlan = topology.vlans[tag]
            parent = resolve_vlan_parent(vlan, topology, interfaces_by_mac)
            units.append(
                self.manager.render_vlan(
                    vlan, parent, parent_managed=parent in managed_names
                )
            )

        seen: Set[str] = set()
        for unit in units:
            for artifact in unit:
                if artifact.filename in seen:
                    raise TopologyError(
                        "more than one artifact named %s" % artifact.filename
                    )
                seen.add(artifact.filename)
        return units

    def setup(
        self, topology: Topology, reload: bool = True
    ) -> ReconcileResult:
        """Write the artifacts of topology and remove stale owned ones.

        Running it twice with the same topology leaves the directory as the
        first run did and writes nothing the second time.
        """
        units = self.render(topology)
        owned = self.manager.owned_artifacts()
        rendered = {a.filename for unit in units for a in unit}

        result = ReconcileResult([], [], [], [])
        if units:
            util.ensure_dir(self.manager.config_dir)
        for unit in units:
            self._write_unit(unit, owned, result)

        for filename in sorted(owned - rendered):
            LOG.info(
                "Removing stale %s artifact %s", self.manager.name, filename
            )
            self._remove(self._path(filename))
            result.removed.append(filename)

        if reload and result.changed:
            self.manager.reload()
        return result

    def rollback(self) -> List[str]:
        """Remove every artifact we own from the config directory.

        The daemon is not reloaded.
        """
        removed = []
        for filename in sorted(self.manager.owned_artifacts()):
            LOG.info("Removing %s artifact %s", self.manager.name, filename)
            self._remove(self._path(filename))
            removed.append(filename)
        return removed

    def _snapshot(self, path: str) -> _Snapshot:
        if not os.path.exists(path):
            return None
        return util.load_binary_file(path), util.get_permissions(path)

    def _write_unit(
        self, unit: List[Artifact], owned: Set[str], result: ReconcileResult
    ) -> None:
        snapshots: Dict[str, _Snapshot] = {}
        written = []
        try:
            for artifact in unit:
                path = self._path(artifact.filename)
                before = self._snapshot(path)
                if before is not None and artifact.filename not in owned:
                    LOG.warning(
                        "Not replacing %s, it is not managed by guestnet", path
                    )
                    result.skipped.append(artifact.filename)
                    continue
                wanted = (util.encode_text(artifact.content), artifact.mode)
                if before == wanted:
                    result.unchanged.append(artifact.filename)
                    continue
                snapshots[path] = before
                LOG.debug("Writing %s artifact %s", self.manager.name, path)
                atomic_helper.write_file(
                    path, artifact.content, mode=artifact.mode
                )
                written.append(artifact.filename)
        except Exception:
            self._restore(snapshots)
            raise
        result.written.extend(written)

    def _restore(self, snapshots: Dict[str, _Snapshot]) -> None:
        for path, before in snapshots.items():
            LOG.debug("Restoring %s", path)
            if before is None:
                self._remove(path)
            else:
                content, mode = before
                atomic_helper.write_file(path, content, mode=mode)

    def _remove(self, path: str) -> None:
        util.del_file(path)
        dirname = os.path.dirname(path)
        if os.path.normpath(dirname) == os.path.normpath(
            self.manager.config_dir
        ):
            return
        try:
            os.rmdir(dirname)
        except OSError:
            LOG.debug("Keeping non-empty directory %s", dirname)
