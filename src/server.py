"""Protean Engine runner for the aftersales domain.

Runs the asynchronous side of the return lifecycle in production:
- OutboxProcessor: polls the outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams and invokes the event handlers
  (notification fan-out, refund settlement, order item write-back)

Usage:
    PROTEAN_ENV=production python src/server.py
    PROTEAN_ENV=production python src/server.py --test-mode
"""

import argparse

from protean.server.engine import Engine

from aftersales.domain import aftersales
from aftersales.utils.logging import configure_logging


def run(test_mode: bool = False):
    aftersales.init()
    engine = Engine(aftersales, test_mode=test_mode)
    engine.run()


def main():
    parser = argparse.ArgumentParser(description="Aftersales Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process what is pending and exit instead of running forever",
    )
    args = parser.parse_args()

    configure_logging()
    run(test_mode=args.test_mode)


if __name__ == "__main__":
    main()
