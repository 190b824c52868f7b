"""
Shared fixtures: an in-memory engine and a recording process runner.
"""
import io
from typing import Dict, List, Optional

import pytest

from mythic_compose.ENGINE.docker_client import image_tag
from mythic_compose.errors import EngineUnavailable
from mythic_compose.MANAGERS.config_store import ConfigStore
from mythic_compose.MANAGERS.environment_manager import EnvironmentManager
from mythic_compose.MANAGERS.reconciler import Reconciler
from mythic_compose.MODELS.container_info import ContainerInfo, MountInfo, VolumeUsage
from mythic_compose.RUNNERS.compose_invoker import ComposeInvocation, ComposeVariant
from mythic_compose.RUNNERS.process_runner import ProcessResult


class FakeEngine:
    """Engine query interface backed by plain lists."""

    def __init__(self):
        self.containers: List[ContainerInfo] = []
        self.tags: List[str] = []
        self.volumes: List[str] = []
        self.usage: Optional[List[VolumeUsage]] = []
        self.logs: Dict[str, bytes] = {}
        self.archives: Dict[str, bytes] = {}
        self.version = "24.0.7"
        self.removed_containers: List[str] = []
        self.removed_images: List[str] = []
        self.removed_volumes: List[str] = []
        self.created_volumes: List[str] = []
        self.loaded: List[bytes] = []
        self.put: List[tuple] = []
        self.failing_containers: List[str] = []

    def add_container(self, name, state="running", status="Up 2 minutes", mounts=None, ports=None, id=None):
        container = ContainerInfo(
            id=id or f"id-{name}",
            name=name,
            image=image_tag(name) if name else "",
            state=state,
            status=status,
            mounts=mounts or [],
            ports=ports or [],
        )
        self.containers.append(container)
        return container

    def list_containers(self, all=True, size=False):
        if all:
            return list(self.containers)
        return [c for c in self.containers if c.state == "running"]

    def find_container(self, name):
        for container in self.containers:
            if container.name == name.lower():
                return container
        return None

    def remove_container(self, container_id):
        if container_id in self.failing_containers:
            raise EngineUnavailable(f"Failed to remove container {container_id}")
        self.removed_containers.append(container_id)
        self.containers = [c for c in self.containers if c.id != container_id]

    def container_log_stream(self, container_id, tail=100, follow=False):
        return io.BytesIO(self.logs.get(container_id, b""))

    def put_archive(self, container_id, path, data):
        self.put.append((container_id, path, data))
        return True

    def get_archive(self, container_id, path):
        return iter([self.archives[path]]), {"name": path}

    def list_image_tags(self):
        return list(self.tags)

    def image_exists(self, service):
        return image_tag(service) in self.tags

    def remove_image(self, tag):
        if tag not in self.tags:
            return False
        self.tags.remove(tag)
        self.removed_images.append(tag)
        return True

    def remove_dangling_images(self):
        return []

    def load_images(self, archive):
        self.loaded.append(archive.read())

    def list_volumes(self):
        return list(self.volumes)

    def create_volume(self, name):
        self.created_volumes.append(name)
        self.volumes.append(name)

    def remove_volume(self, name):
        self.removed_volumes.append(name)
        self.volumes.remove(name)

    def disk_usage_volumes(self):
        return self.usage

    def server_version(self):
        return self.version


class RecordingRunner:
    """Process runner that records commands instead of spawning them."""

    def __init__(self, fail_on=None, stdout=""):
        self.commands: List[List[str]] = []
        self.tty_commands: List[List[str]] = []
        self.fail_on = fail_on
        self.stdout = stdout

    def _result(self, command):
        failed = self.fail_on is not None and self.fail_on in command
        return ProcessResult(args=list(command), return_code=1 if failed else 0, stdout=self.stdout)

    def run(self, command, env=None, working_dir=None, capture_stdout=True):
        self.commands.append(list(command))
        return self._result(command)

    def run_tty(self, command, env=None, working_dir=None):
        self.tty_commands.append(list(command))
        return self._result(command)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def plugin_invocation():
    return ComposeInvocation(ComposeVariant.PLUGIN, "/usr/bin/docker", ("compose",))


@pytest.fixture
def workdir(tmp_path):
    (tmp_path / "InstalledServices").mkdir()
    return tmp_path


@pytest.fixture
def config_store(workdir):
    return ConfigStore(str(workdir / "docker-compose.yml"))


@pytest.fixture
def reconciler(config_store, workdir, engine):
    return Reconciler(config_store, str(workdir / "InstalledServices"), engine)


@pytest.fixture
def environment():
    return EnvironmentManager(overrides={})


def install_service(workdir, name):
    """Creates an install directory for a third-party service."""
    path = workdir / "InstalledServices" / name
    path.mkdir()
    return path


def volume_mount(name, destination="/data"):
    return MountInfo(name=name, source=f"/var/lib/docker/volumes/{name}/_data", destination=destination)
