from __future__ import annotations

import logging
from typing import Dict

from .client import WriteBackend, WriteError
from .config import LoadSpec
from .metrics import MetricsAggregator, OperationRecord

logger = logging.getLogger(__name__)

USER_AGENT = "MediaStorm"


class RequestExecutor:
    """Runs one write end to end.

    A failed write is logged with its stage and otherwise ignored: no retry, no
    success increment. Whatever happens, the record's METRICS line is printed
    exactly once.
    """

    def __init__(
        self,
        backend: WriteBackend,
        payload: bytes,
        spec: LoadSpec,
        aggregator: MetricsAggregator,
    ):
        self.backend = backend
        self.payload = payload
        self.spec = spec
        self.aggregator = aggregator

    def headers(self, seq: int) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "X-Request-ID": str(seq)}
        if self.spec.host:
            headers["Host"] = self.spec.host
        return headers

    async def __call__(self, record: OperationRecord) -> OperationRecord:
        with self.aggregator.pending(record):
            try:
                result = await self.backend.put(self.spec.path, self.payload, self.headers(record.seq))
            except WriteError as e:
                record.fail(e.stage, e)
                logger.error("%s: %s", e.stage, e)
                return record

            logger.info("%d :: %s", result.status, result.summary)
            record.succeed()
            self.aggregator.record_success()
        return record
