from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from .client import WriteBackend, make_backend
from .config import ConfigError, LoadSpec, default_path
from .executor import RequestExecutor
from .generator import Dispatcher
from .metrics import MetricsAggregator, ThroughputReporter
from .payload import make_payload

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


async def run(spec: LoadSpec, backend: Optional[WriteBackend] = None) -> MetricsAggregator:
    """Drive one load run. Returns only once a bounded run has fully drained."""
    backend = backend or make_backend(spec)
    payload = make_payload(spec.size)

    logger.info("MediaStorm: PutObject %s (%d B) @ %g TPS", spec.path, spec.size, spec.rate)

    aggregator = MetricsAggregator()
    reporter = ThroughputReporter(aggregator)
    async with backend:
        executor = RequestExecutor(backend, payload, spec, aggregator)
        dispatcher = Dispatcher(spec, executor)
        reporter.start()
        try:
            issued = await dispatcher.run()
        finally:
            await reporter.stop()
    logger.info("issued %d operations, %d succeeded", issued, aggregator.successes)
    return aggregator


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mediastorm", description="Open-loop PUT load generator")
    p.add_argument("--endpoint", default="", help="container endpoint (required)")
    p.add_argument("--host", default=None, help="HTTP host header, if different than endpoint")
    p.add_argument("--insecure", action="store_true", help="ignore server certificate")
    p.add_argument("--path", default=None, help="path to write (default: mediastorm/<UTC timestamp>)")
    p.add_argument("--tps", type=float, default=1.0, help="PutObject TPS")
    p.add_argument("--size", type=int, default=512, help="content size to write (random bytes)")
    p.add_argument("-n", dest="count", type=int, default=0,
                   help="number of requests to send, 0 means infinite")
    p.add_argument("--poolsize", type=int, default=100, help="connection pool size")
    p.add_argument("--backend", choices=["http", "s3"], default="http")
    p.add_argument("--bucket", default=None, help="bucket to write to (s3 backend)")
    p.add_argument("--region", default=None, help="region for the s3 backend")
    p.add_argument("--timeout", type=float, default=None,
                   help="per-operation timeout in seconds (default: none)")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def spec_from_args(args: argparse.Namespace) -> LoadSpec:
    return LoadSpec(
        endpoint=args.endpoint,
        host=args.host or None,
        insecure=args.insecure,
        path=args.path or default_path(),
        rate=args.tps,
        size=args.size,
        count=args.count,
        pool_size=args.poolsize,
        backend=args.backend,
        bucket=args.bucket,
        region=args.region,
        timeout=args.timeout,
    )


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    try:
        spec = spec_from_args(args)
        backend = make_backend(spec)
    except ConfigError as e:
        parser.error(str(e))

    try:
        asyncio.run(run(spec, backend))
    except KeyboardInterrupt:
        logger.info("interrupted, stopping")
    return 0


def main():
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
