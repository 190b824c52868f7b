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
Engine query interface backed by the Docker SDK for Python.

Containers are identified by their ``name`` label, which the compose document
sets to the lower-cased service name.
"""
import logging
from contextlib import contextmanager
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple

import docker
from docker.errors import DockerException, ImageNotFound
from requests.exceptions import RequestException

from ..errors import EngineUnavailable
from ..MODELS.container_info import ContainerInfo, MountInfo, PortBinding, VolumeUsage
from ..MODELS.service_definition import NAME_LABEL

logger = logging.getLogger(__name__)

DANGLING_TAG = "<none>:<none>"


def image_tag(service: str) -> str:
    """
    The image a service is built into: ``<service>:latest``.
    """
    return f"{service.lower()}:latest"


@contextmanager
def engine_call(action: str):
    """
    Converts SDK and transport failures into EngineUnavailable.
    """
    try:
        yield
    except (DockerException, RequestException) as e:
        raise EngineUnavailable(f"Failed to {action}: {e}") from e


def container_from_api(data: Dict[str, Any]) -> ContainerInfo:
    """
    Builds a ContainerInfo from one entry of the engine's container list.
    """
    labels = data.get("Labels") or {}
    ports = [
        PortBinding(
            private_port=p.get("PrivatePort", 0),
            public_port=p.get("PublicPort", 0),
            ip=p.get("IP", ""),
            protocol=p.get("Type", "tcp"),
        )
        for p in data.get("Ports") or []
    ]
    mounts = [
        MountInfo(
            name=m.get("Name", ""),
            source=m.get("Source", ""),
            destination=m.get("Destination", ""),
        )
        for m in data.get("Mounts") or []
    ]
    return ContainerInfo(
        id=data.get("Id", ""),
        name=labels.get(NAME_LABEL, ""),
        image=data.get("Image", ""),
        state=data.get("State", ""),
        status=data.get("Status", ""),
        ports=ports,
        mounts=mounts,
    )


class EngineClient:
    """
    Narrow wrapper over the Docker API used by the registry.
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        """
        Args:
            client: An existing Docker client. Created from the environment on first use otherwise.
        """
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            with engine_call("connect to Docker"):
                self._client = docker.from_env()
        return self._client

    @property
    def api(self):
        return self.client.api

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # Containers

    def list_containers(self, all: bool = True, size: bool = False) -> List[ContainerInfo]:
        with engine_call("get container list from Docker"):
            entries = self.api.containers(all=all, size=size)
        return [container_from_api(entry) for entry in entries]

    def find_container(self, name: str) -> Optional[ContainerInfo]:
        wanted = name.lower()
        for container in self.list_containers(all=True):
            if container.name == wanted:
                return container
        return None

    def remove_container(self, container_id: str) -> None:
        with engine_call(f"remove container {container_id}"):
            self.api.remove_container(container_id, force=True)

    def container_log_stream(self, container_id: str, tail: int = 100, follow: bool = False) -> BinaryIO:
        """
        Opens the raw multiplexed log stream of a container.

        The SDK's own log helpers strip the frame headers, so the request is
        made on the API session directly and the undecoded body is returned.
        """
        url = f"{self.api.base_url}/v{self.api.api_version}/containers/{container_id}/logs"
        params = {
            "stdout": 1,
            "stderr": 1,
            "follow": 1 if follow else 0,
            "tail": str(tail),
        }
        with engine_call(f"get logs for container {container_id}"):
            response = self.api.get(url, params=params, stream=True, timeout=None)
            response.raise_for_status()
        return response.raw

    def put_archive(self, container_id: str, path: str, data: bytes) -> bool:
        with engine_call(f"copy into container {container_id}"):
            return self.api.put_archive(container_id, path, data)

    def get_archive(self, container_id: str, path: str) -> Tuple[Iterator[bytes], Dict[str, Any]]:
        with engine_call(f"copy from container {container_id}"):
            return self.api.get_archive(container_id, path)

    # Images

    def list_image_tags(self) -> List[str]:
        with engine_call("get image list from Docker"):
            images = self.api.images(all=True)
        tags = []
        for image in images:
            tags.extend(image.get("RepoTags") or [])
        return tags

    def image_exists(self, service: str) -> bool:
        return image_tag(service) in self.list_image_tags()

    def remove_image(self, tag: str) -> bool:
        """
        Removes one image by tag. Returns False when no such image exists.
        """
        with engine_call(f"remove image {tag}"):
            try:
                self.api.remove_image(tag, force=True)
            except ImageNotFound:
                return False
        return True

    def remove_dangling_images(self) -> List[str]:
        """
        Removes untagged images.

        Returns:
            Error messages for images that could not be removed. One failure
            does not stop the remaining removals.
        """
        with engine_call("get list of images"):
            images = self.api.images()
        failures = []
        for image in images:
            if DANGLING_TAG not in (image.get("RepoTags") or []):
                continue
            try:
                self.api.remove_image(image["Id"], force=True, noprune=False)
            except DockerException as e:
                logger.warning(f"[!] Failed to remove unused image: {e}")
                failures.append(f"{image['Id']}: {e}")
        return failures

    def load_images(self, archive: BinaryIO) -> None:
        with engine_call("load images into Docker"):
            self.client.images.load(archive)

    # Volumes

    def list_volumes(self) -> List[str]:
        with engine_call("get volume list from Docker"):
            result = self.api.volumes()
        return [v["Name"] for v in (result or {}).get("Volumes") or []]

    def create_volume(self, name: str) -> None:
        with engine_call(f"create volume {name}"):
            self.api.create_volume(name=name)

    def remove_volume(self, name: str) -> None:
        with engine_call(f"remove volume {name}"):
            self.api.remove_volume(name, force=True)

    def disk_usage_volumes(self) -> Optional[List[VolumeUsage]]:
        """
        Returns per-volume usage, or None when the engine reports no volumes at all.
        """
        with engine_call("get disk sizes"):
            usage = self.api.df()
        volumes = usage.get("Volumes")
        if volumes is None:
            return None
        result = []
        for v in volumes:
            data = v.get("UsageData") or {}
            size = data.get("Size")
            result.append(VolumeUsage(
                name=v.get("Name", ""),
                size=size if size is not None and size >= 0 else None,
                ref_count=max(data.get("RefCount", 0), 0),
                mountpoint=v.get("Mountpoint", ""),
            ))
        return result

    # Engine

    def server_version(self) -> str:
        with engine_call("get docker version"):
            return self.api.version().get("Version", "")
