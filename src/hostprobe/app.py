"""hostprobe - command line entry point."""

import argparse
import signal
import sys

from hostprobe.config import Config, ConfigManager
from hostprobe.daemon import daemonize
from hostprobe.logger import get_logger, setup_logger
from hostprobe.samplers import SamplerGroup
from hostprobe.server import ProbeServer, create_server
from hostprobe.sources import count_cores
from hostprobe.store import SnapshotStore

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostprobe",
        description="Sample host metrics and serve them as JSON over TCP.",
    )
    parser.add_argument("--daemon", action="store_true", help="detach from the controlling terminal")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--host", help="address to listen on")
    parser.add_argument("--port", type=int, help="TCP port to listen on")
    parser.add_argument("--log-level", dest="log_level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", dest="log_file", help="also log to this file")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    return ConfigManager.load_config(
        args.config,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        log_file=args.log_file,
    )


class HostProbe:
    """Wires the store, samplers and server together."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.store = SnapshotStore(cores=count_cores())
        self.samplers = SamplerGroup.from_config(config, self.store)
        self.server: ProbeServer | None = None

    def start(self) -> ProbeServer:
        """Bind the listener, then start sampling. Raises OSError on bind failure."""
        self.server = create_server(self.config, self.store)
        self.samplers.start()
        return self.server

    def stop(self) -> None:
        """Stop sampling and close the listener."""
        self.samplers.stop()
        if self.server is not None:
            self.server.server_close()
            self.server = None


def main(argv: list[str] | None = None) -> int:
    """Entry point for hostprobe."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except (OSError, ValueError, TypeError) as e:
        print(f"hostprobe: invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.daemon:
        daemonize()
    setup_logger(config.log_level, config.log_file)

    probe = HostProbe(config)
    try:
        server = probe.start()
    except OSError as e:
        logger.error("Couldn't listen on %s:%d: %s", config.host, config.port, e)
        probe.stop()
        return 1

    def _terminate(signum, frame):
        raise KeyboardInterrupt

    previous = signal.signal(signal.SIGTERM, _terminate)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        signal.signal(signal.SIGTERM, previous)
        probe.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
