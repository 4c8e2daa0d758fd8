"""Protean Engine runner for Threadline domains.

Only needed when PROTEAN_ENV selects asynchronous event processing: the
Engine then delivers Ordering events to the cancellation queue projector and
Payments events to their handlers.

Usage:
    python src/server.py                     # Run both domain engines
    python src/server.py --domain ordering   # Run only the ordering engine
    python src/server.py --domain payments   # Run only the payments engine
"""

import argparse
import asyncio

from protean.server.engine import Engine
from shared.logging import configure_logging

DOMAIN_NAMES = ["ordering", "payments"]


def _get_domain(name):
    """Import and initialize a domain by name."""
    if name == "ordering":
        from ordering.domain import ordering

        ordering.init()
        return ordering
    elif name == "payments":
        from payments.domain import payments

        payments.init()
        return payments
    else:
        raise ValueError(f"Unknown domain: {name}")


async def run(domain_names):
    engines = []
    for name in domain_names:
        domain = _get_domain(name)
        engines.append(Engine(domain))

    await asyncio.gather(*(engine.run() for engine in engines))


def main():
    parser = argparse.ArgumentParser(description="Threadline Engine runner")
    parser.add_argument(
        "--domain",
        choices=DOMAIN_NAMES,
        help="Run a single domain engine (default: run all)",
    )
    args = parser.parse_args()

    configure_logging()
    domain_names = [args.domain] if args.domain else DOMAIN_NAMES

    asyncio.run(run(domain_names))


if __name__ == "__main__":
    main()
