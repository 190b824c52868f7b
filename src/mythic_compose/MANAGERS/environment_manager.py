"""
Managers for the .env configuration and the environment handed to compose.
"""
import os
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import dotenv_values

from ..MODELS.settings import LOOPBACK_ADDRESS, PORT_BINDINGS, PortBindingVariables

TRUE_VALUES = {"1", "true", "yes", "y", "on"}


class EnvironmentManager:
    """
    Merges the .env file with the process environment, process environment winning.
    Lookups are case-insensitive.
    """
    def __init__(self, env_file: Optional[str] = None, overrides: Optional[Mapping[str, str]] = None):
        """
        Initializes the environment manager.

        :param env_file: Path to the .env file. Missing files are treated as empty.
        :param overrides: Values applied on top of the file. Defaults to os.environ.
        """
        self.env_file = env_file
        self.file_values: Dict[str, str] = {}
        if env_file and os.path.exists(env_file):
            for key, value in dotenv_values(env_file).items():
                if value is not None:
                    self.file_values[key.upper()] = value
        self.process_values: Dict[str, str] = dict(os.environ if overrides is None else overrides)

        self.values: Dict[str, str] = dict(self.file_values)
        for key, value in self.process_values.items():
            self.values[key.upper()] = value

    def get_str(self, key: str, default: str = "") -> str:
        return self.values.get(key.upper(), default)

    def get_int(self, key: str, default: int = 0) -> int:
        raw = self.values.get(key.upper())
        if raw is None:
            return default
        try:
            return int(raw.strip())
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.values.get(key.upper())
        if raw is None:
            return default
        return raw.strip().lower() in TRUE_VALUES

    def get_merged_environment(self) -> Dict[str, str]:
        """
        The environment for spawned docker and compose processes: the .env values,
        without empty ones, then the process environment with its keys unchanged.
        """
        merged = {key: value for key, value in self.file_values.items() if value != ""}
        merged.update(self.process_values)
        return merged

    def connection_address(self, binding: PortBindingVariables) -> str:
        """
        The address an operator uses to reach a first-party service.
        Services hosted locally under their own name are reached on the loopback address.
        """
        host = self.get_str(binding.host_variable)
        if host == binding.service:
            host = LOOPBACK_ADDRESS
        port = self.get_int(binding.port_variable)
        if binding.scheme == "postgresql":
            return f"postgresql://mythic_user:password@{host}:{port}{binding.path}"
        if binding.scheme == "amqp":
            return f"amqp://{self.get_str('RABBITMQ_USER')}:password@{host}:{port}{binding.path}"
        if binding.service == "mythic_nginx" and self.get_bool("NGINX_USE_SSL"):
            return f"https://{host}:{port}{binding.path}"
        return f"{binding.scheme}://{host}:{port}{binding.path}"

    def connection_rows(self) -> List[Tuple[PortBindingVariables, str, bool]]:
        """
        (binding, address, bound to localhost only) for every first-party service.
        """
        return [
            (binding, self.connection_address(binding), self.get_bool(binding.bind_localhost_variable))
            for binding in PORT_BINDINGS
        ]
