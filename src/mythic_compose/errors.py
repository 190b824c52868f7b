"""
Exceptions raised by the registry.

Fatal errors are raised up to the CLI, which prints a short message and exits.
Per-item failures during bulk operations are collected, not raised.
"""
from typing import Optional


class MythicComposeError(Exception):
    """
    Base class for every error the registry reports to the operator.
    """
    exit_code = 1


class DocumentNotFound(MythicComposeError):
    """
    The configuration document (or another required path) does not exist.
    """
    def __init__(self, path: str):
        super().__init__(f"{path} does not exist")
        self.path = path


class DocumentParseError(MythicComposeError):
    """
    The configuration document exists but is not a valid compose mapping.
    """
    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to parse {path}: {reason}. Fix the file by hand and retry.")
        self.path = path
        self.reason = reason


class DocumentWriteError(MythicComposeError):
    """
    The configuration document could not be written.
    """
    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to write {path}: {reason}")
        self.path = path
        self.reason = reason


class EngineUnavailable(MythicComposeError):
    """
    The Docker engine cannot be reached or its CLI cannot be located.
    """


class InstallRootError(MythicComposeError):
    """
    The third-party install root could not be created or listed.
    """
    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to list contents of {path}: {reason}")
        self.path = path


class FrameError(MythicComposeError):
    """
    Base class for malformed log stream frames.
    """


class FrameTruncated(FrameError):
    """
    A log frame ended before its declared payload length.
    """
    def __init__(self, expected: int, received: int):
        super().__init__(f"Log frame truncated: expected {expected} bytes, got {received}")
        self.expected = expected
        self.received = received


class InvalidFrame(FrameError):
    """
    A log frame header carried an unknown stream type.
    """
    def __init__(self, stream_type: int):
        super().__init__(f"Invalid log frame stream type: {stream_type}")
        self.stream_type = stream_type


class PortConflict(MythicComposeError):
    """
    A port a service is about to publish is already bound on this host.
    """
    def __init__(self, port: int, variable: str, owner: Optional[str] = None):
        message = f"Port {port}, from variable {variable}, appears to already be in use"
        if owner:
            message += f" by {owner}"
        super().__init__(message)
        self.port = port
        self.variable = variable
        self.owner = owner


class CommandFailed(MythicComposeError):
    """
    A spawned docker or docker compose process exited with a non-zero status.
    """
    def __init__(self, args, return_code: int):
        super().__init__(f"Command failed with exit code {return_code}: {' '.join(args)}")
        self.args_list = list(args)
        self.return_code = return_code


class VolumeError(MythicComposeError):
    """
    A volume operation could not be carried out.
    """
