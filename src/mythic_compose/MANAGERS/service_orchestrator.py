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
Lifecycle operations on declared services, carried out through docker compose.
"""
import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from packaging.version import InvalidVersion, Version

from ..ENGINE.docker_client import image_tag
from ..errors import CommandFailed, DocumentNotFound, DocumentWriteError, EngineUnavailable
from ..MODELS.settings import MINIMUM_ENGINE_VERSION
from ..RUNNERS.compose_invoker import ComposeInvocation, locate_docker, select_compose_invocation
from ..RUNNERS.process_runner import ProcessRunner
from ..UTILS.port_finder import PortPrechecker
from .config_store import ConfigStore
from .environment_manager import EnvironmentManager
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

SAVED_IMAGES_ARCHIVE = "mythic_save.tar"


class ServiceOrchestrator:
    """
    Translates start/stop/build/remove requests into compose and docker calls.

    The compose tool is resolved once per orchestrator and used for every call.
    Nothing is retried: a failing call raises CommandFailed and the request ends.
    """
    def __init__(self,
                 config_store: ConfigStore,
                 reconciler: Reconciler,
                 engine,
                 environment: EnvironmentManager,
                 workdir: str,
                 runner: Optional[ProcessRunner] = None,
                 invocation: Optional[ComposeInvocation] = None,
                 prechecker: Optional[PortPrechecker] = None,
                 docker_executable: Optional[str] = None):
        """
        Initializes the orchestrator.

        :param config_store: Store for the compose document.
        :param reconciler: Membership set computations.
        :param engine: Engine query interface.
        :param environment: Merged .env and process environment.
        :param workdir: Directory compose runs in (holds docker-compose.yml).
        :param runner: Process runner, created on demand.
        :param invocation: Pre-selected compose invocation, selected on first use otherwise.
        :param prechecker: Port checker run before starting services.
        :param docker_executable: Path of the docker CLI, looked up on PATH otherwise.
        """
        self.config_store = config_store
        self.reconciler = reconciler
        self.engine = engine
        self.environment = environment
        self.workdir = workdir
        self.runner = runner or ProcessRunner("compose")
        self._invocation = invocation
        self.prechecker = prechecker or PortPrechecker(environment)
        self._docker = docker_executable

    @property
    def invocation(self) -> ComposeInvocation:
        if self._invocation is None:
            self._invocation = select_compose_invocation()
            logger.debug(f"[*] Using {self._invocation.variant.value}")
        return self._invocation

    @property
    def docker(self) -> str:
        if self._docker is None:
            self._docker = locate_docker()
        return self._docker

    def run_compose(self, args: List[str]) -> None:
        """
        Runs one compose command with terminal pass-through.

        :raises CommandFailed: If compose exits non-zero.
        """
        command = self.invocation.command(args)
        result = self.runner.run_tty(command, env=self.environment.get_merged_environment(),
                                     working_dir=self.workdir)
        if not result.ok:
            logger.error(f"[-] Error from docker compose: exit code {result.return_code}")
            logger.error(f"[*] Docker compose command: {args}")
            raise CommandFailed(command, result.return_code)

    def run_docker(self, args: List[str]) -> str:
        """
        Runs one docker CLI command and returns its stdout.

        :raises CommandFailed: If docker exits non-zero.
        """
        command = [self.docker] + list(args)
        result = self.runner.run(command, env=self.environment.get_merged_environment(),
                                 working_dir=self.workdir)
        if not result.ok:
            logger.error(f"[-] Error from docker: exit code {result.return_code}")
            logger.error(f"[*] Docker command: {args}")
            raise CommandFailed(command, result.return_code)
        return result.stdout.strip()

    def start_services(self, services: Optional[Iterable[str]] = None, rebuild: bool = False) -> Tuple[List[str], List[str]]:
        """
        Starts services, building only those without an image unless a rebuild is forced.

        :param services: Services to start; all declared services when empty.
        :param rebuild: Rebuild every image before starting.
        :return: (services started from an existing image, services built then started).
        :raises PortConflict: Before any engine call, if a local port is taken.
        """
        targets = self.reconciler.resolve_targets(services)
        if not targets:
            logger.info("[*] No services to start")
            return [], []
        self.prechecker.check(targets)

        if rebuild:
            self.run_compose(["up", "--build", "-d"] + targets)
            return [], targets

        already_built = []
        need_to_build = []
        for name in targets:
            if self.engine.image_exists(name):
                already_built.append(name)
            else:
                need_to_build.append(name)
        if need_to_build:
            self.run_compose(["up", "--build", "-d"] + need_to_build)
        if already_built:
            self.run_compose(["up", "-d"] + already_built)
        return already_built, need_to_build

    def stop_services(self, services: Optional[Iterable[str]] = None, delete_images: bool = False) -> List[str]:
        """
        Stops running containers, or stops and removes them with their anonymous volumes.

        :param services: Services to stop; all declared services when empty.
        """
        targets = self.reconciler.resolve_targets(services)
        if not targets:
            return []
        if delete_images:
            self.run_compose(["rm", "-s", "-v", "-f"] + targets)
        else:
            self.run_compose(["stop"] + targets)
        return targets

    def build_services(self, services: Iterable[str]) -> List[str]:
        """
        Removes the containers of the given services and rebuilds them.
        """
        targets = sorted({name.lower() for name in services})
        if not targets:
            return []
        self.run_compose(["rm", "-s", "-v", "-f"] + targets)
        self.run_compose(["up", "--build", "-d"] + targets)
        return targets

    def remove_containers(self, services: Iterable[str]) -> None:
        targets = sorted({name.lower() for name in services})
        if not targets:
            return
        self.run_compose(["rm", "-s", "-v", "-f"] + targets)
        self.run_docker(["rm", "-f"] + targets)

    def add_services(self, services: Iterable[str]) -> List[str]:
        """
        Declares third-party services with the default definition.
        Services that are already declared keep their definition.

        :return: The services that were added.
        """
        added = []
        for name in services:
            definition, existed = self.config_store.get_service(name)
            key = name.lower()
            if existed:
                logger.info(f"[*] {key} is already declared")
                continue
            data = definition.to_dict()
            install_dir = os.path.join(self.reconciler.install_root, key)
            if os.path.isdir(install_dir):
                data["build"] = {"context": os.path.relpath(install_dir, self.workdir)}
            self.config_store.set_service(key, data)
            added.append(key)
        return added

    def remove_services(self, services: Iterable[str]) -> List[str]:
        """
        Removes service declarations, stopping and removing any container first.
        Services that are not declared are skipped without error, and a failure to
        stop one container does not stop the declarations from being removed.

        :return: The declarations that were removed.
        """
        names = [name.lower() for name in services]
        for name in names:
            if self.engine.find_container(name) is not None:
                try:
                    self.stop_services([name], delete_images=True)
                except CommandFailed as e:
                    logger.warning(f"[!] Failed to stop {name}: {e}")
                self._remove_image(name)
        removed = self.config_store.remove_services(names)
        logger.info(f"[+] Successfully updated {os.path.basename(self.config_store.compose_path)}")
        return removed

    def _remove_image(self, name: str) -> None:
        try:
            if self.engine.remove_image(image_tag(name)):
                logger.info(f"[+] Removed image {image_tag(name)}")
        except EngineUnavailable as e:
            logger.warning(f"[!] Failed to remove image {image_tag(name)}: {e}")

    def check_engine_version(self) -> bool:
        """
        Checks the Docker server version against the minimum supported one.
        """
        raw = self.engine.server_version()
        try:
            current = Version(raw)
        except InvalidVersion:
            logger.error(f"[-] Invalid version string: {raw}")
            return False
        if current >= Version(MINIMUM_ENGINE_VERSION):
            return True
        logger.error(f"[-] Docker version is too old, {raw}, for Mythic. Please update")
        return False

    def health_check(self, services: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """
        Reads the health state of each service's container.
        A failure for one service is logged and the others are still checked.
        """
        health = {}
        for name in self.reconciler.resolve_targets(services):
            try:
                health[name] = self.run_docker(["inspect", "--format", "{{json .State.Health }}", name])
            except CommandFailed as e:
                logger.warning(f"[!] Failed to check status of {name}: {e}")
        return health

    def save_images(self, services: Optional[Iterable[str]], output_dir: str) -> Optional[str]:
        """
        Saves the images of the given services into one archive.

        :param services: Services to save; installed and declared core services when empty.
        :param output_dir: Directory, relative to the working directory, to write into.
        :return: Path of the archive, or None when no image was found.
        """
        names = [name.lower() for name in (services or [])]
        if not names:
            names = sorted(self.reconciler.installed_on_disk() | self.reconciler.declared_core())
        tags = []
        for name in names:
            if self.engine.image_exists(name):
                tags.append(image_tag(name))
            else:
                logger.info(f"[-] No image locally for {name}")
        if not tags:
            return None

        target_dir = os.path.join(self.workdir, output_dir)
        try:
            os.makedirs(target_dir, mode=0o755, exist_ok=True)
        except OSError as e:
            raise DocumentWriteError(target_dir, str(e)) from e
        archive = os.path.join(target_dir, SAVED_IMAGES_ARCHIVE)
        logger.info(f"[*] Saving the following images:\n{tags}")
        logger.info(f"[*] Saving to {archive}\nThis will take a while...")
        self.run_docker(["save", "-o", archive] + tags)
        return archive

    def load_images(self, input_dir: str) -> None:
        archive = os.path.join(self.workdir, input_dir, SAVED_IMAGES_ARCHIVE)
        if not os.path.exists(archive):
            raise DocumentNotFound(archive)
        with open(archive, 'rb') as f:
            self.engine.load_images(f)
        logger.info("[+] loaded docker images!")

    def prune_images(self) -> List[str]:
        """
        Removes untagged images. Returns the per-image failures.
        """
        return self.engine.remove_dangling_images()
