"""Main entry point module.

Handles CLI arguments, poller lifecycle, signal handling, and clean shutdown.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Any, List

import config as config_module
import database
import emitter
import poller
import sampler
import scraper
import storage


logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 30


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def write_to_stdout(record: str) -> None:
    """Pipeline writer that streams records to stdout, one per line."""
    sys.stdout.write(record + "\n")
    sys.stdout.flush()


def build_delta_sampler(
    sampler_cfg: config_module.SamplerConfig, counter_storage: storage.CounterStorage
) -> sampler.DeltaSampler:
    """Build the delta sampler described by one sampler configuration.

    Args:
        sampler_cfg: Sampler configuration
        counter_storage: Storage for the last observed value

    Returns:
        DeltaSampler reading sampler_cfg.uri for sampler_cfg.interface
    """
    file_sampler = sampler.FileBasedSampler(
        sampler_cfg.uri,
        scraper.LinuxNetworkDevicesScraper(sampler_cfg.interface),
    )
    return sampler.DeltaSampler(
        file_sampler,
        counter_storage,
        policy=sampler.DeltaPolicy(sampler_cfg.delta_policy),
        start_at=sampler_cfg.start_at,
    )


class SamplerRuntime:
    """The poller of one configured sampler and the resources it owns."""

    def __init__(
        self,
        name: str,
        sampler_poller: poller.Poller,
        sampler_emitter: emitter.SamplerEmitter,
        sink: emitter.Sink,
        persister: storage.SQLitePersister,
    ) -> None:
        self.name = name
        self.poller = sampler_poller
        self.emitter = sampler_emitter
        self.sink = sink
        self.persister = persister

    def close(self) -> None:
        """Release the sink and the database connection."""
        self.sink.close()
        self.persister.close()


def build_sampler_runtime(
    sampler_cfg: config_module.SamplerConfig, cfg: config_module.Config
) -> SamplerRuntime:
    """Build the sink, storage, sampler and poller for one sampler.

    Args:
        sampler_cfg: Sampler configuration
        cfg: Root configuration (storage path and record identity)

    Returns:
        SamplerRuntime with an idle poller

    Raises:
        SinkError: If the sink cannot be built
        StorageError: If the state database cannot be opened
        OSError: If the output file cannot be opened
    """
    name = f"sampler-{sampler_cfg.name}" if sampler_cfg.name else "sampler"

    sink = emitter.build_sink(sampler_cfg.output, pipeline_writer=write_to_stdout)
    try:
        persister = storage.SQLitePersister(cfg.storage.path)
    except storage.StorageError:
        sink.close()
        raise

    counter_storage = storage.CounterStorage(
        persister, key=storage.counter_key(sampler_cfg.name)
    )
    delta_sampler = build_delta_sampler(sampler_cfg, counter_storage)
    sampler_emitter = emitter.SamplerEmitter(delta_sampler, sink, cfg.record)
    sampler_poller = poller.Poller(
        sampler_cfg.poll_interval_seconds, sampler_emitter.emit, name=name
    )
    return SamplerRuntime(name, sampler_poller, sampler_emitter, sink, persister)


def main() -> int:
    """Main entry point.

    Returns:
        Exit code (0 for clean shutdown)
    """
    # Parse CLI arguments
    parser = argparse.ArgumentParser(description="Network usage delta sampler")
    parser.add_argument(
        "--config", required=True, help="Path to configuration YAML file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    # Setup logging
    log_level = logging.DEBUG if args.debug else logging.INFO
    setup_logging(log_level)

    # Load configuration first
    try:
        cfg = config_module.load_config(args.config)
        logger.info(f"Configuration loaded from {args.config}")
    except config_module.ConfigError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return 1

    # Validate storage directory exists
    storage_dir = os.path.dirname(os.path.abspath(cfg.storage.path)) or "."
    if not os.path.isdir(storage_dir):
        logger.error(
            f"Storage directory does not exist: {storage_dir!r} "
            f"(from storage.path: {cfg.storage.path!r})"
        )
        return 1

    # Initialize database (creates tables, then we close this connection)
    try:
        init_conn = database.init_db(cfg.storage.path)
        init_conn.close()
        logger.info(f"Database initialized at {cfg.storage.path}")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    # Build every sampler before starting any of them
    runtimes: List[SamplerRuntime] = []
    for sampler_cfg in cfg.samplers:
        try:
            runtimes.append(build_sampler_runtime(sampler_cfg, cfg))
        except (emitter.SinkError, storage.StorageError, OSError) as e:
            logger.error(f"Failed to set up sampler {sampler_cfg.name or 'default'!r}: {e}")
            for runtime in runtimes:
                runtime.close()
            return 1

    # Create shutdown event
    shutdown_event = threading.Event()

    # Setup signal handlers
    def handle_signal(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    for runtime, sampler_cfg in zip(runtimes, cfg.samplers):
        runtime.poller.start()
        logger.info(
            f"{runtime.name}: sampling interface {sampler_cfg.interface!r} "
            f"from {sampler_cfg.uri} to {sampler_cfg.output.type}"
        )

    # Main thread heartbeat
    try:
        while not shutdown_event.wait(timeout=HEARTBEAT_INTERVAL_SECONDS):
            for runtime in runtimes:
                logger.debug(
                    f"Heartbeat: {runtime.name}={runtime.poller.state.value}, "
                    f"last_emitted_at={runtime.emitter.last_emitted_at}"
                )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        shutdown_event.set()

    # Shutdown
    logger.info("Shutting down samplers...")
    for runtime in runtimes:
        runtime.poller.stop()
    for runtime in runtimes:
        runtime.close()

    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
