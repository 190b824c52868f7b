"""
Models for registry settings and the first-party service bindings.
"""
import os
import sys
from typing import FrozenSet, List, Optional
from pydantic import BaseModel

COMPOSE_FILE_NAME = "docker-compose.yml"
ENV_FILE_NAME = ".env"
INSTALL_FOLDER_NAME = "InstalledServices"
COMPOSE_VERSION = "2.4"
MINIMUM_ENGINE_VERSION = "20.10.22"
WORKDIR_VARIABLE = "MYTHIC_COMPOSE_WORKDIR"
LOOPBACK_ADDRESS = "127.0.0.1"


class PortBindingVariables(BaseModel):
    """
    The environment variables that place one first-party service on the network.
    """
    service: str
    host_variable: str
    port_variable: str
    title: str
    bind_localhost_variable: str
    scheme: str = "http"
    path: str = ""
    additional: bool = False


PORT_BINDINGS: List[PortBindingVariables] = [
    PortBindingVariables(service="mythic_nginx", host_variable="NGINX_HOST", port_variable="NGINX_PORT",
                         title="Nginx (Mythic Web UI)", bind_localhost_variable="NGINX_BIND_LOCALHOST_ONLY"),
    PortBindingVariables(service="mythic_server", host_variable="MYTHIC_SERVER_HOST",
                         port_variable="MYTHIC_SERVER_PORT", title="Mythic Backend Server",
                         bind_localhost_variable="MYTHIC_SERVER_BIND_LOCALHOST_ONLY"),
    PortBindingVariables(service="mythic_graphql", host_variable="HASURA_HOST", port_variable="HASURA_PORT",
                         title="Hasura GraphQL Console", bind_localhost_variable="HASURA_BIND_LOCALHOST_ONLY"),
    PortBindingVariables(service="mythic_jupyter", host_variable="JUPYTER_HOST", port_variable="JUPYTER_PORT",
                         title="Jupyter Console", bind_localhost_variable="JUPYTER_BIND_LOCALHOST_ONLY"),
    PortBindingVariables(service="mythic_documentation", host_variable="DOCUMENTATION_HOST",
                         port_variable="DOCUMENTATION_PORT", title="Internal Documentation",
                         bind_localhost_variable="DOCUMENTATION_BIND_LOCALHOST_ONLY"),
    PortBindingVariables(service="mythic_postgres", host_variable="POSTGRES_HOST", port_variable="POSTGRES_PORT",
                         title="Postgres Database", bind_localhost_variable="POSTGRES_BIND_LOCALHOST_ONLY",
                         scheme="postgresql", path="/mythic_db", additional=True),
    PortBindingVariables(service="mythic_react", host_variable="MYTHIC_REACT_HOST",
                         port_variable="MYTHIC_REACT_PORT", title="React Server",
                         bind_localhost_variable="MYTHIC_REACT_BIND_LOCALHOST_ONLY", path="/new", additional=True),
    PortBindingVariables(service="mythic_rabbitmq", host_variable="RABBITMQ_HOST", port_variable="RABBITMQ_PORT",
                         title="RabbitMQ", bind_localhost_variable="RABBITMQ_BIND_LOCALHOST_ONLY",
                         scheme="amqp", additional=True),
]

# Services that belong to the registry itself; every other name is third-party.
CORE_SERVICES: FrozenSet[str] = frozenset(binding.service for binding in PORT_BINDINGS)


def default_workdir() -> str:
    """
    The directory holding the running executable, overridable through the environment.
    """
    override = os.environ.get(WORKDIR_VARIABLE)
    if override:
        return os.path.abspath(override)
    return os.path.dirname(os.path.abspath(sys.argv[0] or "."))


class Settings(BaseModel):
    """
    Filesystem locations used by one invocation.
    """
    workdir: str
    compose_file_name: str = COMPOSE_FILE_NAME
    env_file_name: str = ENV_FILE_NAME
    install_folder_name: str = INSTALL_FOLDER_NAME

    @classmethod
    def from_workdir(cls, workdir: Optional[str] = None) -> "Settings":
        return cls(workdir=os.path.abspath(workdir or default_workdir()))

    @property
    def compose_path(self) -> str:
        return os.path.join(self.workdir, self.compose_file_name)

    @property
    def env_path(self) -> str:
        return os.path.join(self.workdir, self.env_file_name)

    @property
    def install_root(self) -> str:
        return os.path.join(self.workdir, self.install_folder_name)
