"""
Volume management: reporting declared volumes against the engine, removing
volumes, and copying files in and out of them through the container that mounts them.
"""
import io
import logging
import os
import posixpath
import tarfile
from typing import List

from ..errors import EngineUnavailable, VolumeError
from ..MODELS.container_info import ContainerInfo
from ..MODELS.status_report import VolumeRow
from ..UTILS.formatting import byte_count_si
from .config_store import ConfigStore

logger = logging.getLogger(__name__)

VOLUME_SUFFIX = "_volume"


def volume_owner(volume_name: str) -> str:
    """
    The service a volume belongs to by naming convention, ``<service>_volume...``.
    """
    return volume_name.split(VOLUME_SUFFIX)[0]


class VolumeManager:
    """
    Works on the named volumes declared in the compose document.
    """
    def __init__(self, config_store: ConfigStore, engine):
        """
        Initializes the volume manager.

        :param config_store: Store for the compose document.
        :param engine: Engine query interface.
        """
        self.config_store = config_store
        self.engine = engine

    def volume_report(self) -> List[VolumeRow]:
        """
        Lists declared volumes the engine knows about, with size and the container using them.

        :return: Rows sorted by volume name.
        """
        usage = self.engine.disk_usage_volumes()
        if usage is None:
            logger.info("[-] No volumes known")
            return []
        declared = self.config_store.get_volumes()
        containers = self.engine.list_containers(all=False, size=True)

        rows = []
        for volume in usage:
            if volume.name not in declared:
                continue
            owner = volume_owner(volume.name)
            row = VolumeRow(
                name=volume.name,
                size=byte_count_si(volume.size),
                location=volume.mountpoint,
                owner=owner,
            )
            for container in containers:
                if container.name == owner:
                    row.container_status = container.status
                if container.mounts_named(volume.name):
                    row.container = f"{owner} ({volume.ref_count})"
            rows.append(row)
        return sorted(rows, key=lambda r: r.name)

    def remove_volume(self, volume_name: str) -> List[str]:
        """
        Removes a volume after force-removing every container that uses it.

        :return: Failures for containers that could not be removed. A failure
            does not stop the other removals.
        """
        if volume_name not in self.engine.list_volumes():
            logger.info("[*] Volume not found")
            return []

        failures = []
        for container in self.engine.list_containers(all=True):
            if not container.mounts_named(volume_name):
                continue
            try:
                self.engine.remove_container(container.id)
                logger.info(f"[+] Removed container {container.name}, which was using that volume")
            except EngineUnavailable as e:
                logger.warning(f"[!] Failed to remove container that's using the volume: {e}")
                failures.append(f"{container.name}: {e}")
        self.engine.remove_volume(volume_name)
        logger.info(f"[+] Removed volume {volume_name}")
        return failures

    def ensure_volume(self, volume_name: str) -> ContainerInfo:
        """
        Creates the volume if it is missing and returns the running container of
        its service that mounts it. Files can only be moved through such a container.

        :raises VolumeError: If the owning service has no running container using the volume.
        """
        if volume_name not in self.engine.list_volumes():
            self.engine.create_volume(volume_name)
            logger.info(f"[+] Created volume {volume_name}")

        owner = volume_owner(volume_name)
        for container in self.engine.list_containers(all=False):
            if container.name != owner:
                continue
            if container.mounts_named(volume_name):
                return container
            raise VolumeError(f"container, {owner}, isn't using volume, {volume_name}")
        raise VolumeError(f"failed to find container, {owner}, for volume, {volume_name}")

    def copy_into_volume(self, source_path: str, file_name: str, volume_name: str) -> None:
        """
        Copies a local file into a volume as ``file_name``.
        """
        container = self.ensure_volume(volume_name)
        mount = container.mounts_named(volume_name)[0]

        buffer = io.BytesIO()
        try:
            with tarfile.open(fileobj=buffer, mode='w') as archive:
                archive.add(source_path, arcname=file_name)
        except OSError as e:
            raise VolumeError(f"Failed to read {source_path}: {e}") from e
        if not self.engine.put_archive(container.id, mount.destination, buffer.getvalue()):
            raise VolumeError(f"Failed to write {file_name} into {volume_name}")
        logger.info("[+] Successfully wrote file")

    def copy_from_volume(self, volume_name: str, file_name: str, destination: str) -> None:
        """
        Copies ``file_name`` out of a volume to a local path.
        """
        container = self.ensure_volume(volume_name)
        mount = container.mounts_named(volume_name)[0]

        stream, _ = self.engine.get_archive(container.id, posixpath.join(mount.destination, file_name))
        buffer = io.BytesIO(b"".join(stream))
        try:
            with tarfile.open(fileobj=buffer, mode='r') as archive:
                member = next((m for m in archive.getmembers() if m.isfile()), None)
                if member is None:
                    raise VolumeError(f"{file_name} in {volume_name} is not a regular file")
                content = archive.extractfile(member).read()
        except tarfile.TarError as e:
            raise VolumeError(f"Failed to read {file_name} from {volume_name}: {e}") from e

        try:
            parent = os.path.dirname(os.path.abspath(destination))
            os.makedirs(parent, exist_ok=True)
            with open(destination, 'wb') as f:
                f.write(content)
        except OSError as e:
            raise VolumeError(f"Failed to write {destination}: {e}") from e
        logger.info("[+] Successfully wrote file")
