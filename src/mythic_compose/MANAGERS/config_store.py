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
Persistent store for the docker-compose.yml configuration document.
"""
import copy
import logging
import os
import tempfile
from typing import Any, Dict, Iterable, List, Tuple, Union

from ..errors import DocumentNotFound, DocumentParseError, DocumentWriteError
from ..MODELS.service_definition import ServiceDefinition, normalize_service_name, strip_transient_keys
from ..MODELS.settings import COMPOSE_VERSION
from ..PARSERS.compose_parser import ComposeParser

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    Loads, patches and rewrites the compose document.

    Every read goes back to disk and every write replaces the whole file, so
    concurrent invocations follow last-writer-wins.
    """
    def __init__(self, compose_path: str, parser: ComposeParser = None):
        """
        :param compose_path: Path of docker-compose.yml.
        :param parser: Parser used to read and write the document.
        """
        self.compose_path = os.path.abspath(compose_path)
        self.parser = parser or ComposeParser()

    def load(self) -> Dict[str, Any]:
        """
        Reads the document, creating an empty one when the file is missing.

        :return: The document mapping.
        :raises DocumentParseError: If the file exists but cannot be parsed.
        """
        try:
            return self.parser.parse(self.compose_path)
        except DocumentNotFound:
            logger.info(f"[-] {os.path.basename(self.compose_path)} not found, creating an empty one")
            self._create_empty()
            return {}

    def ensure_exists(self) -> None:
        if not os.path.exists(self.compose_path):
            self._create_empty()
            logger.info(f"[+] Successfully created new {os.path.basename(self.compose_path)} file.")

    def _create_empty(self) -> None:
        try:
            with open(self.compose_path, 'a'):
                pass
        except OSError as e:
            raise DocumentWriteError(self.compose_path, str(e)) from e

    @staticmethod
    def _section(document: Dict[str, Any], key: str) -> Dict[str, Any]:
        section = document.get(key)
        if section is None:
            section = {}
            document[key] = section
        return section

    def service_names(self) -> List[str]:
        return [str(name) for name in (self.load().get("services") or {})]

    def get_service(self, name: str) -> Tuple[ServiceDefinition, bool]:
        """
        Returns a service's definition for use as a template.

        :param name: Service name, matched case-insensitively.
        :return: (definition, existed). Stored definitions come back without
            transient keys; unknown services get the default template.
        """
        key = normalize_service_name(name)
        services = self.load().get("services") or {}
        if key in services:
            stored = services[key]
            if stored is not None and not isinstance(stored, dict):
                raise DocumentParseError(self.compose_path, f"service '{key}' must be a mapping, found {type(stored).__name__}")
            return ServiceDefinition.from_dict(strip_transient_keys(stored or {})), True
        return ServiceDefinition.default_for(key), False

    def set_service(self, name: str, definition: Union[ServiceDefinition, Dict[str, Any]]) -> None:
        """
        Inserts or replaces one service, leaving the rest of the document untouched.
        """
        key = normalize_service_name(name)
        if isinstance(definition, ServiceDefinition):
            definition = definition.to_dict()
        document = self.load()
        services = self._section(document, "services")
        if key in services:
            logger.info(f"[+] Updated {key} in {os.path.basename(self.compose_path)}")
        else:
            logger.info(f"[+] Added {key} to {os.path.basename(self.compose_path)}")
        services[key] = copy.deepcopy(definition)
        self.persist(document)

    def remove_services(self, names: Iterable[str]) -> List[str]:
        """
        Deletes service declarations. Names that are not declared are skipped.

        :return: The names that were actually removed.
        """
        document = self.load()
        services = self._section(document, "services")
        removed = []
        for name in names:
            key = normalize_service_name(name)
            if key in services:
                del services[key]
                removed.append(key)
                logger.info(f"[+] Removed {key} from {os.path.basename(self.compose_path)}")
        self.persist(document)
        return removed

    def get_volumes(self) -> Dict[str, Any]:
        """
        Returns the declared volumes. This is the document's view, not the engine's.
        """
        return dict(self.load().get("volumes") or {})

    def set_volumes(self, volumes: Dict[str, Any]) -> None:
        document = self.load()
        document["volumes"] = copy.deepcopy(volumes)
        self.persist(document)

    def persist(self, document: Dict[str, Any]) -> None:
        """
        Writes the whole document, replacing the file atomically.

        The version tag is always re-applied and the document-level
        ``networks`` key is always dropped.

        :raises DocumentWriteError: If the file cannot be written.
        """
        document = dict(document)
        document["version"] = COMPOSE_VERSION
        document.pop("networks", None)
        content = self.parser.dump(document)

        directory = os.path.dirname(self.compose_path)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".docker-compose.", suffix=".tmp", dir=directory)
            with os.fdopen(fd, 'w') as f:
                f.write(content)
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.compose_path)
            tmp_path = None
        except OSError as e:
            raise DocumentWriteError(self.compose_path, str(e)) from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
