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
Unit tests for the compose document store.
"""
import os

import pytest
import yaml

from mythic_compose.errors import DocumentParseError
from mythic_compose.MANAGERS.config_store import ConfigStore
from mythic_compose.MODELS.service_definition import ServiceDefinition


def write_document(path, document):
    with open(path, 'w') as f:
        yaml.safe_dump(document, f)


def read_document(path):
    with open(path) as f:
        return yaml.safe_load(f)


class TestLoad:
    """Tests for reading the document."""

    def test_missing_file_is_created_empty(self, tmp_path):
        """A missing document is created and reads as empty."""
        path = tmp_path / "docker-compose.yml"
        store = ConfigStore(str(path))
        assert store.load() == {}
        assert path.exists()

    def test_ensure_exists(self, tmp_path):
        """ensure_exists materialises the file once and leaves it alone after."""
        path = tmp_path / "docker-compose.yml"
        store = ConfigStore(str(path))
        store.ensure_exists()
        assert path.exists()
        path.write_text("services: {}\n")
        store.ensure_exists()
        assert path.read_text() == "services: {}\n"

    def test_invalid_yaml(self, tmp_path):
        """Unparsable YAML is reported, not repaired."""
        path = tmp_path / "docker-compose.yml"
        path.write_text("services: [unclosed\n")
        with pytest.raises(DocumentParseError):
            ConfigStore(str(path)).load()
        assert path.read_text() == "services: [unclosed\n"

    def test_services_must_be_mapping(self, tmp_path):
        """A list under services is a parse error."""
        path = tmp_path / "docker-compose.yml"
        path.write_text("services:\n  - web\n")
        with pytest.raises(DocumentParseError):
            ConfigStore(str(path)).load()

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(DocumentParseError):
            ConfigStore(str(path)).service_names()


class TestServices:
    """Tests for reading and writing service definitions."""

    def test_default_template(self, tmp_path):
        """An undeclared service gets the default definition."""
        store = ConfigStore(str(tmp_path / "docker-compose.yml"))
        definition, existed = store.get_service("Apfell")
        assert existed is False
        assert definition.to_dict() == {
            "logging": {"driver": "json-file", "options": {"max-file": "1", "max-size": "10m"}},
            "restart": "always",
            "labels": {"name": "apfell"},
            "container_name": "apfell",
            "image": "apfell",
        }
        assert definition.log_limits == ("1", "10m")
        assert definition.label_name == "apfell"

    def test_set_then_get_strips_transient_keys(self, tmp_path):
        """Stored definitions come back without transient keys and everything else intact."""
        store = ConfigStore(str(tmp_path / "docker-compose.yml"))
        stored = {
            "build": {"context": "./InstalledServices/poseidon"},
            "image": "poseidon",
            "command": "run",
            "network_mode": "host",
            "extra_hosts": ["mythic_server:127.0.0.1"],
            "healthcheck": {"test": ["CMD", "true"]},
            "networks": ["default_network"],
            "restart": "always",
            "labels": {"name": "poseidon"},
            "environment": ["MYTHIC_ADDRESS=http://127.0.0.1:17443"],
            "container_name": "poseidon",
        }
        store.set_service("poseidon", stored)

        definition, existed = store.get_service("poseidon")
        assert existed is True
        assert definition.to_dict() == {
            "restart": "always",
            "labels": {"name": "poseidon"},
            "environment": ["MYTHIC_ADDRESS=http://127.0.0.1:17443"],
            "container_name": "poseidon",
        }

    def test_round_trip_keeps_non_string_values(self, tmp_path):
        """Scalars of any type come back exactly as they were stored."""
        store = ConfigStore(str(tmp_path / "docker-compose.yml"))
        stored = {
            "restart": False,
            "container_name": 5,
            "logging": "none",
            "labels": ["name=apollo", "tier=agent"],
            "cpus": 1.5,
            "privileged": True,
            "ports": [7443, "17443:17443"],
            "image": 12,
            "build": "InstalledServices/apollo",
        }
        store.set_service("apollo", stored)

        definition, existed = store.get_service("apollo")
        assert existed
        assert definition.to_dict() == {k: v for k, v in stored.items() if k not in ("image", "build")}
        assert definition.log_limits == (None, None)
        assert definition.label_name == "apollo"

    def test_hand_edited_definition(self, tmp_path):
        """YAML that reads restart: no as a boolean still loads."""
        path = tmp_path / "docker-compose.yml"
        path.write_text("services:\n  apollo:\n    restart: no\n    container_name: 5\n    logging: none\n")
        definition, _ = ConfigStore(str(path)).get_service("apollo")
        assert definition.to_dict() == {"restart": False, "container_name": 5, "logging": "none"}

    def test_definition_must_be_mapping(self, tmp_path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("services:\n  apollo: just a string\n")
        with pytest.raises(DocumentParseError):
            ConfigStore(str(path)).get_service("apollo")

    def test_transient_keys_kept_on_disk(self, tmp_path):
        """Transient keys are only stripped from templates, not from the file."""
        path = tmp_path / "docker-compose.yml"
        store = ConfigStore(str(path))
        store.set_service("poseidon", {"build": {"context": "x"}, "image": "poseidon"})
        store.set_service("apollo", ServiceDefinition.default_for("apollo"))
        services = read_document(path)["services"]
        assert services["poseidon"] == {"build": {"context": "x"}, "image": "poseidon"}

    def test_names_are_normalised(self, tmp_path):
        store = ConfigStore(str(tmp_path / "docker-compose.yml"))
        store.set_service("  Poseidon ", {"image": "poseidon"})
        assert store.service_names() == ["poseidon"]
        _, existed = store.get_service("POSEIDON")
        assert existed

    def test_set_service_preserves_other_keys(self, tmp_path):
        """Updating one service leaves other services and top-level keys untouched."""
        path = tmp_path / "docker-compose.yml"
        write_document(path, {
            "version": "2.4",
            "x-custom": {"anchor": True},
            "services": {"mythic_server": {"image": "mythic_server", "ports": ["17443:17443"]}},
            "volumes": {"mythic_postgres_volume": None},
        })
        ConfigStore(str(path)).set_service("apollo", {"image": "apollo"})

        document = read_document(path)
        assert document["x-custom"] == {"anchor": True}
        assert document["services"]["mythic_server"] == {"image": "mythic_server", "ports": ["17443:17443"]}
        assert document["services"]["apollo"] == {"image": "apollo"}
        assert "mythic_postgres_volume" in document["volumes"]


class TestRemove:
    """Tests for removing services."""

    def test_remove_is_idempotent(self, tmp_path):
        """Removing twice leaves the same document as removing once."""
        path = tmp_path / "docker-compose.yml"
        store = ConfigStore(str(path))
        store.set_service("apollo", {"image": "apollo"})
        store.set_service("poseidon", {"image": "poseidon"})

        assert store.remove_services(["Apollo"]) == ["apollo"]
        once = path.read_text()
        assert store.remove_services(["apollo"]) == []
        assert path.read_text() == once
        assert store.service_names() == ["poseidon"]

    def test_remove_missing_name(self, tmp_path):
        store = ConfigStore(str(tmp_path / "docker-compose.yml"))
        assert store.remove_services(["ghost"]) == []


class TestPersist:
    """Tests for whole-document writes."""

    def test_version_tag_and_networks(self, tmp_path):
        """Every write re-applies the version tag and drops document-level networks."""
        path = tmp_path / "docker-compose.yml"
        write_document(path, {
            "version": "3",
            "networks": {"default_network": {"driver": "bridge"}},
            "services": {"web": {"image": "web", "networks": ["default_network"]}},
        })
        ConfigStore(str(path)).set_service("apollo", {"image": "apollo"})

        document = read_document(path)
        assert document["version"] == "2.4"
        assert "networks" not in document
        assert document["services"]["web"]["networks"] == ["default_network"]

    def test_no_temporary_files_left(self, tmp_path):
        path = tmp_path / "docker-compose.yml"
        ConfigStore(str(path)).set_service("apollo", {"image": "apollo"})
        assert os.listdir(tmp_path) == ["docker-compose.yml"]

    def test_volumes_round_trip(self, tmp_path):
        store = ConfigStore(str(tmp_path / "docker-compose.yml"))
        store.set_volumes({"apollo_volume": None, "mythic_postgres_volume": {"driver": "local"}})
        assert store.get_volumes() == {"apollo_volume": None, "mythic_postgres_volume": {"driver": "local"}}
