"""
Log retrieval for service containers.
"""
import logging
import sys
from typing import BinaryIO, Optional

from ..PARSERS.log_frame_parser import StreamType, iter_frames

logger = logging.getLogger(__name__)


class LogAggregator:
    """
    Prints the log output of a service's container.
    """
    def __init__(self, engine):
        """
        Initializes the log aggregator.

        :param engine: Engine query interface.
        """
        self.engine = engine

    def print_logs(self,
                   service: str,
                   tail: int = 100,
                   follow: bool = False,
                   out: Optional[BinaryIO] = None,
                   err: Optional[BinaryIO] = None) -> bool:
        """
        Writes a container's stdout frames to ``out`` and stderr frames to ``err``.

        In follow mode this returns only once the engine closes the stream.

        :param service: The service whose container to read.
        :param tail: Number of lines from the end of the log to start from.
        :param follow: Keep streaming new output.
        :return: False when no container carries that name.
        :raises FrameError: If the stream is malformed.
        """
        out = out or sys.stdout.buffer
        err = err or sys.stderr.buffer
        container = self.engine.find_container(service)
        if container is None:
            logger.info("[-] Failed to find that container")
            return False

        stream = self.engine.container_log_stream(container.id, tail=tail, follow=follow)
        try:
            for frame in iter_frames(stream):
                target = err if frame.stream == StreamType.STDERR else out
                target.write(frame.payload)
                target.flush()
        finally:
            stream.close()
        return True
