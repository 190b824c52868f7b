# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Reconciliation of the three views of the service fleet: what is installed on
disk, what is declared in docker-compose.yml and what the engine knows about.

None of the sets are cached. The document and the engine can change between
invocations, so every call recomputes from the source.
"""
import logging
import os
from typing import Iterable, List, Optional, Set

from ..errors import InstallRootError
from ..MODELS.container_info import ContainerInfo
from ..MODELS.settings import CORE_SERVICES
from ..MODELS.status_report import InventoryRow, ServiceLifecycle, StatusReport, VolumeDiff
from .config_store import ConfigStore

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Computes membership sets and their differences for reporting and for
    deciding which services a lifecycle request touches.
    """
    def __init__(self, config_store: ConfigStore, install_root: str, engine):
        """
        :param config_store: Store for the compose document.
        :param install_root: Directory whose sub-directories are installed third-party services.
        :param engine: Engine query interface (see ENGINE.docker_client.EngineClient).
        """
        self.config_store = config_store
        self.install_root = os.path.abspath(install_root)
        self.engine = engine

    # Membership sets

    def installed_on_disk(self) -> Set[str]:
        """
        Names of the sub-directories of the install root, creating the root if needed.

        :raises InstallRootError: If the root cannot be created or listed.
        """
        if not os.path.isdir(self.install_root):
            try:
                os.makedirs(self.install_root, mode=0o775, exist_ok=True)
            except OSError as e:
                raise InstallRootError(self.install_root, str(e)) from e
        try:
            with os.scandir(self.install_root) as entries:
                return {entry.name for entry in entries if entry.is_dir()}
        except OSError as e:
            logger.error(f"[-] Failed to list contents of {self.install_root}")
            raise InstallRootError(self.install_root, str(e)) from e

    def declared(self) -> Set[str]:
        return {name.lower() for name in self.config_store.service_names()}

    def declared_third_party(self) -> Set[str]:
        return self.declared() - CORE_SERVICES

    def declared_core(self) -> Set[str]:
        return self.declared() & CORE_SERVICES

    def running_info(self) -> List[ContainerInfo]:
        """
        Containers the engine knows about that carry a ``name`` label, sorted by name.
        """
        containers = [c for c in self.engine.list_containers(all=True) if c.name]
        return sorted(containers, key=lambda c: c.name)

    def running_labels(self) -> Set[str]:
        return {c.name for c in self.running_info()}

    # Reports

    def diff_for_status(self) -> StatusReport:
        """
        Partitions engine containers into core and installed rows and lists the
        advisory differences. Reads only.
        """
        containers = self.running_info()
        on_disk = self.installed_on_disk()
        declared = self.declared_third_party()
        running = {c.name for c in containers}

        report = StatusReport()
        for container in containers:
            if container.name in CORE_SERVICES:
                report.core.append(container)
            elif container.name in on_disk or container.name in declared:
                report.installed.append(container)

        report.declared_not_running = sorted(declared - running)
        report.on_disk_not_declared = sorted(on_disk - (declared | running))
        return report

    def inventory(self) -> List[InventoryRow]:
        """
        Lists third-party services: containers mounted from the install root first,
        then declared services without a container, then services only on disk.
        """
        on_disk = self.installed_on_disk()
        declared = self.declared_third_party()
        rows = []
        seen = set()
        for container in self.running_info():
            if container.name in seen or not container.mounts_with_source(self.install_root):
                continue
            seen.add(container.name)
            rows.append(InventoryRow(
                name=container.name,
                container_status=container.status,
                image_built=True,
                declared=container.name in declared,
            ))

        for name in sorted(declared - seen):
            rows.append(InventoryRow(name=name, image_built=self.engine.image_exists(name), declared=True))
        for name in sorted(on_disk - declared - seen):
            rows.append(InventoryRow(name=name, image_built=self.engine.image_exists(name), declared=False))
        return rows

    def volume_diff(self) -> VolumeDiff:
        """
        Compares declared volumes with engine-known volumes.
        """
        declared = set(self.config_store.get_volumes())
        known = set(self.engine.list_volumes())
        return VolumeDiff(
            declared_only=sorted(declared - known),
            engine_only=sorted(known - declared),
            both=sorted(declared & known),
        )

    # Targets

    def resolve_targets(self, requested: Optional[Iterable[str]] = None) -> List[str]:
        """
        Resolves the services a lifecycle request applies to.

        :param requested: Explicit names, or nothing to mean every declared service.
        :return: Lower-cased service names, sorted.
        """
        names = [name.lower() for name in (requested or [])]
        if not names:
            return sorted(self.declared_third_party() | self.declared_core())
        return sorted(set(names))

    def lifecycle_of(self, name: str, check_image: bool = True) -> ServiceLifecycle:
        """
        Derives where a service currently sits in its lifecycle.

        A service removed from the document but still installed reads as
        ON_DISK_ONLY; only deleting the install directory takes it back to UNKNOWN.
        """
        key = name.lower()
        for container in self.running_info():
            if container.name == key:
                if container.state == "running":
                    return ServiceLifecycle.RUNNING
                return ServiceLifecycle.STOPPED
        if key in self.declared():
            if not check_image:
                return ServiceLifecycle.DECLARED
            if self.engine.image_exists(key):
                return ServiceLifecycle.BUILT
            return ServiceLifecycle.NOT_BUILT
        if key in self.installed_on_disk():
            return ServiceLifecycle.ON_DISK_ONLY
        return ServiceLifecycle.UNKNOWN
