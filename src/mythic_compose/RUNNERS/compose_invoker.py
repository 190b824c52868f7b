"""
Selection of the tool that applies compose changes.

``docker-compose`` is preferred when it is on PATH; otherwise the ``compose``
plugin of the docker CLI is used. There is no third option.
"""
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import EngineUnavailable

Which = Callable[[str], Optional[str]]


class ComposeVariant(str, Enum):
    """How compose is invoked."""

    STANDALONE = "docker-compose"
    PLUGIN = "docker compose"


@dataclass(frozen=True)
class ComposeInvocation:
    """A resolved compose executable and the arguments placed before every call."""

    variant: ComposeVariant
    executable: str
    prefix: Tuple[str, ...] = ()

    def command(self, args: Sequence[str]) -> List[str]:
        return [self.executable, *self.prefix, *args]


def locate_docker(which: Which = shutil.which) -> str:
    """
    Returns the path of the docker CLI.

    :raises EngineUnavailable: If docker is not on PATH.
    """
    path = which("docker")
    if not path:
        raise EngineUnavailable("docker is not installed or available in the current PATH")
    return path


def select_compose_invocation(which: Which = shutil.which) -> ComposeInvocation:
    """
    Picks the standalone compose tool, falling back to the docker compose plugin.

    :param which: Executable lookup, shutil.which by default.
    :raises EngineUnavailable: If neither docker-compose nor docker is on PATH.
    """
    standalone = which("docker-compose")
    if standalone:
        return ComposeInvocation(ComposeVariant.STANDALONE, standalone)
    docker = which("docker")
    if docker:
        return ComposeInvocation(ComposeVariant.PLUGIN, docker, ("compose",))
    raise EngineUnavailable("docker-compose and docker are not installed or available in the current PATH")
