"""
Models for service definitions stored in docker-compose.yml.

Third-party definitions are open-ended, so a ServiceDefinition keeps every key it
is given with its value untouched. The few fields the registry reads itself are
checked for shape by the accessors, not by validation.
"""
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict

ServiceValue = Union[str, int, float, bool, None, List["ServiceValue"], Dict[str, "ServiceValue"]]

# Engine-computed or identity fields that are never handed out as configurable state.
TRANSIENT_KEYS = frozenset({
    "network_mode",
    "extra_hosts",
    "build",
    "networks",
    "command",
    "image",
    "healthcheck",
})

NAME_LABEL = "name"


def normalize_service_name(name: str) -> str:
    """
    Normalizes a service name for use as a document key or engine label.
    """
    return name.strip().lower()


def strip_transient_keys(data: Dict[str, ServiceValue]) -> Dict[str, ServiceValue]:
    return {k: v for k, v in data.items() if k not in TRANSIENT_KEYS}


class ServiceDefinition(BaseModel):
    """
    One engine-manageable unit as declared under ``services``.
    """
    model_config = ConfigDict(extra="allow")

    container_name: Optional[Any] = None
    image: Optional[Any] = None
    restart: Optional[Any] = None
    labels: Optional[Any] = None
    logging: Optional[Any] = None

    @classmethod
    def default_for(cls, name: str) -> "ServiceDefinition":
        """
        Builds the template used when a service is not declared yet.

        :param name: The service name.
        :return: A definition with restart policy, bounded json logging and name label.
        """
        return cls(
            logging={
                "driver": "json-file",
                "options": {
                    "max-file": "1",
                    "max-size": "10m",
                },
            },
            restart="always",
            labels={NAME_LABEL: name},
            container_name=name,
            image=name,
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, ServiceValue]]) -> "ServiceDefinition":
        return cls.model_validate(dict(data or {}))

    def to_dict(self) -> Dict[str, ServiceValue]:
        """
        Returns the definition as a plain mapping holding only the keys that were set.
        """
        return self.model_dump(exclude_unset=True)

    def without_transient_keys(self) -> "ServiceDefinition":
        return ServiceDefinition.from_dict(strip_transient_keys(self.to_dict()))

    @property
    def label_name(self) -> Optional[str]:
        """
        The engine-visible name carried in the ``name`` label, if any.
        """
        if isinstance(self.labels, dict):
            value = self.labels.get(NAME_LABEL)
            return str(value) if value is not None else None
        if isinstance(self.labels, list):
            for entry in self.labels:
                key, _, value = str(entry).partition("=")
                if key == NAME_LABEL:
                    return value
        return None

    @property
    def log_limits(self) -> Tuple[Optional[str], Optional[str]]:
        """
        Returns (max-file, max-size) from the logging options.
        """
        logging_config = self.logging if isinstance(self.logging, dict) else {}
        options = logging_config.get("options")
        if not isinstance(options, dict):
            return None, None
        return options.get("max-file"), options.get("max-size")
