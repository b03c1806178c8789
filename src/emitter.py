"""Emitter module for usage records.

Builds the network usage record for each sampled delta and hands it to a
Sink. Two sinks exist: FileSink appends records to a size-rotated log file,
PipelineSink passes them to a downstream writer (the host pipeline).
"""

import json
import logging
import logging.handlers
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from config import IdentityConfig, OutputConfig
from sampler import Sampler


logger = logging.getLogger(__name__)

RECORD_FORMAT = "v1"
SCHEMA_ID_KEY = "schema_id"
NETWORK_SCHEMA_ID = "network_schema_id"

FILE_LOGGER_OUTPUT = "file_logger"
PIPELINE_EMITTER_OUTPUT = "pipeline_emitter"


def records_logger_name(path: str) -> str:
    """Name of the logger that writes records to path, one per output file."""
    return f"{__name__}.records:{os.path.abspath(path)}"


class SinkError(Exception):
    """Raised when a sink cannot be built from the output configuration."""
    pass


class Sink(ABC):
    """Destination for serialized usage records."""

    @abstractmethod
    def write(self, record: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class FileSink(Sink):
    """Appends one record per line to a size-rotated file.

    Uses a dedicated, non-propagating logger so records never reach the
    application log handlers.
    """

    def __init__(self, path: str, max_bytes: int = 102400, backup_count: int = 20) -> None:
        """Initialize the sink.

        Args:
            path: File the records are written to
            max_bytes: Size at which the file is rotated
            backup_count: Number of rotated files to keep
        """
        self.path = path
        self._handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        self._handler.setFormatter(logging.Formatter("%(message)s"))

        self._records_logger = logging.getLogger(records_logger_name(path))
        self._records_logger.setLevel(logging.INFO)
        self._records_logger.propagate = False
        self._records_logger.addHandler(self._handler)

    def write(self, record: str) -> None:
        self._records_logger.info(record)

    def close(self) -> None:
        self._records_logger.removeHandler(self._handler)
        self._handler.close()


class PipelineSink(Sink):
    """Hands records to a downstream pipeline writer."""

    def __init__(self, writer: Callable[[str], Any]) -> None:
        self._writer = writer

    def write(self, record: str) -> None:
        self._writer(record)


def build_sink(
    output: OutputConfig, pipeline_writer: Optional[Callable[[str], Any]] = None
) -> Sink:
    """Build the sink selected by the output configuration.

    Args:
        output: Output configuration
        pipeline_writer: Downstream writer, required for pipeline_emitter

    Returns:
        The configured Sink

    Raises:
        SinkError: If the output type is unknown or its requirements are missing
    """
    if output.type == FILE_LOGGER_OUTPUT:
        if not output.path:
            raise SinkError("file_logger output requires a path")
        return FileSink(output.path, output.max_bytes, output.backup_count)

    if output.type == PIPELINE_EMITTER_OUTPUT:
        if pipeline_writer is None:
            raise SinkError("pipeline_emitter output requires a pipeline writer")
        return PipelineSink(pipeline_writer)

    raise SinkError(f"unknown output type: {output.type}")


def build_usage_record(
    usage_bytes: int, identity: IdentityConfig, now: Optional[float] = None
) -> Dict[str, Any]:
    """Build the usage record envelope for one delta.

    Args:
        usage_bytes: Bytes used since the previous sample
        identity: Identity fields attached to the event
        now: Unix time of the record (default: now)

    Returns:
        Record dict ready for JSON serialization
    """
    if now is None:
        now = time.time()
    ts = int(now) * 1000

    event = {
        "id": str(uuid.uuid4()),
        "timestamp": ts,
        "root_org_id": identity.root_org_id,
        "org_id": identity.org_id,
        "env_id": identity.env_id,
        "asset_id": identity.asset_id,
        "worker_id": identity.worker_id,
        "usage_bytes": usage_bytes,
        "billable": identity.billable,
    }

    return {
        "format": RECORD_FORMAT,
        "time": ts,
        "events": [event],
        "metadata": {SCHEMA_ID_KEY: NETWORK_SCHEMA_ID},
    }


class SamplerEmitter:
    """Emit callback that samples a delta and writes its record to a sink."""

    def __init__(self, sampler: Sampler, sink: Sink, identity: IdentityConfig) -> None:
        """Initialize the emitter.

        Args:
            sampler: DeltaSampler producing the usage since the last tick
            sink: Destination for records
            identity: Identity fields attached to each record
        """
        self._sampler = sampler
        self._sink = sink
        self._identity = identity
        self._last_emitted_at: Optional[int] = None

    @property
    def last_emitted_at(self) -> Optional[int]:
        """Unix timestamp of the last record written, or None."""
        return self._last_emitted_at

    def emit(self, stop_event: threading.Event) -> None:
        """Sample once and write the record.

        Args:
            stop_event: Poller stop event; no work is done once it is set

        Raises:
            StorageError, SamplerIOError, ParseError: Propagated from sampling
        """
        if stop_event.is_set():
            return

        usage_bytes = self._sampler.sample()
        now = time.time()
        record = build_usage_record(usage_bytes, self._identity, now)
        self._sink.write(json.dumps(record, separators=(",", ":")))
        self._last_emitted_at = int(now)

        logger.debug(f"Emitted usage record: {usage_bytes} bytes")
