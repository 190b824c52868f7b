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
Parsers for the docker-compose.yml configuration document.
"""
import os
import yaml
from typing import Any, Dict
from ..errors import DocumentNotFound, DocumentParseError

SECTION_KEYS = ("services", "volumes")


class ComposeParser:
    """
    Reads and writes the compose document as a plain mapping.

    Values are kept verbatim: nothing is interpolated or normalised, so a
    document read and written again keeps every key it had.
    """
    def parse(self, compose_path: str) -> Dict[str, Any]:
        """
        Parses a compose file from a path.

        :param compose_path: Path to the compose file.
        :return: The document mapping.
        :raises DocumentNotFound: If the file does not exist.
        :raises DocumentParseError: If the file is not a compose mapping.
        """
        if not os.path.exists(compose_path):
            raise DocumentNotFound(compose_path)
        with open(compose_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content, source=compose_path)

    def parse_from_string(self, content: str, source: str = "<string>") -> Dict[str, Any]:
        """
        Parses a compose document from a string.

        An empty document is an empty mapping.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise DocumentParseError(source, str(e)) from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise DocumentParseError(source, f"expected a mapping at the top level, found {type(data).__name__}")

        for key in SECTION_KEYS:
            section = data.get(key)
            if section is None:
                continue
            if not isinstance(section, dict):
                raise DocumentParseError(source, f"'{key}' must be a mapping, found {type(section).__name__}")
        return data

    def dump(self, document: Dict[str, Any]) -> str:
        """
        Serializes a document mapping back to YAML text.
        """
        return yaml.safe_dump(document, default_flow_style=False, sort_keys=True)
