#!/usr/bin/env python3
"""
Start the STDS API Server
=========================

Loads config.yaml, sets up logging (and optionally the Prometheus
exporter), initializes the engine with the configured parameters, and
serves the JSON API until interrupted.

Usage:
    python run_server.py
    python run_server.py --config config.yaml --port 3001
    python run_server.py --data sample.csv --train
"""

import argparse
import sys

from stds.core import Config, setup_logger
from stds.core.exceptions import STDSError
from stds.events import NotificationChannel
from stds.monitoring import start_metrics_server
from stds.server import build_event_log, create_server
from stds.session import EngineContext


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Run the STDS API server')
    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument(
        '--host',
        type=str,
        default=None,
        help='Bind address (default: from config)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Port to listen on (default: from config)'
    )
    parser.add_argument(
        '--data',
        type=str,
        default=None,
        help='CSV file to load on startup, relative to data_dir'
    )
    parser.add_argument(
        '--train',
        action='store_true',
        help='Train on the --data file before serving'
    )
    return parser.parse_args()


def main():
    args = parse_args()
    config = Config.load(args.config)

    logger = setup_logger(config.logging, log_file=config.get_log_path())

    if config.metrics.enabled:
        start_metrics_server(port=config.metrics.port)

    channel = NotificationChannel(maxsize=config.events.channel_size)
    event_log = build_event_log(channel, maxlen=config.server.event_buffer)
    channel.start()

    context = EngineContext(
        channel=channel,
        data_dir=config.get_data_dir(),
        date_column=config.data.date_column,
    )
    context.start()
    handle = context.initialize(config.engine)

    if args.data:
        try:
            handle.load_data(args.data)
            if args.train:
                report = handle.train()
                logger.info(f"Startup training: {report.to_dict()}")
        except STDSError as e:
            logger.error(f"Startup data failed: {e}")
            return 1

    server = create_server(
        context,
        host=args.host or config.server.host,
        port=args.port if args.port is not None else config.server.port,
        event_log=event_log,
        data_dir=config.get_data_dir(),
    )

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
        context.stop()
        channel.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
