"""
Bulk ingestion: parse an uploaded recipient list, then send the same text
to every recipient and aggregate the outcomes.

A failing row is recorded and the loop moves on; only a ParseError aborts
the whole run. With concurrency > 1 sends overlap, but failures are still
reported in row order.
"""

import asyncio

import structlog

from app.core.dispatcher import MessageDispatcher
from app.core.errors import DispatchError, DispatchErrorKind
from app.core.models import BulkFailure, BulkReport, SendRequest
from app.core.tabular import FileKind, parse_recipients

logger = structlog.get_logger()


class BulkIngestionPipeline:
    def __init__(self, dispatcher: MessageDispatcher, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._dispatcher = dispatcher
        self._concurrency = concurrency

    async def ingest(
        self,
        data: bytes,
        kind: FileKind,
        text: str,
        cancel: asyncio.Event | None = None,
    ) -> BulkReport:
        """Parse `data` and dispatch `text` to each recipient, in row order.

        Args:
            data: Raw upload bytes.
            kind: Reader to use; chosen by the caller from the file suffix.
            text: Message sent to every recipient.
            cancel: Once set, no further sends start and a partial report
                with `cancelled=True` is returned.
        """
        if not text or not text.strip():
            raise ValueError("Message text must not be empty")

        references = await asyncio.to_thread(parse_recipients, data, kind)
        return await self.dispatch_all(references, text, cancel)

    async def dispatch_all(
        self,
        references: list[str],
        text: str,
        cancel: asyncio.Event | None = None,
    ) -> BulkReport:
        log = logger.bind(total=len(references), concurrency=self._concurrency)
        log.info("bulk.started")

        semaphore = asyncio.Semaphore(self._concurrency)
        outcomes: dict[int, BulkFailure | None] = {}

        async def attempt(row: int, reference: str):
            async with semaphore:
                if cancel is not None and cancel.is_set():
                    return
                outcomes[row] = await self._dispatch_row(row, reference, text)

        if self._concurrency == 1:
            for row, reference in enumerate(references, start=1):
                await attempt(row, reference)
        else:
            await asyncio.gather(
                *(attempt(row, reference) for row, reference in enumerate(references, start=1))
            )

        failures = tuple(outcomes[row] for row in sorted(outcomes) if outcomes[row] is not None)
        report = BulkReport(
            total=len(references),
            succeeded=len(outcomes) - len(failures),
            failed=len(failures),
            failures=failures,
            cancelled=len(outcomes) < len(references),
        )
        log.info(
            "bulk.completed",
            succeeded=report.succeeded,
            failed=report.failed,
            cancelled=report.cancelled,
        )
        return report

    async def _dispatch_row(self, row: int, reference: str, text: str) -> BulkFailure | None:
        try:
            await self._dispatcher.dispatch(SendRequest.for_reference(reference, text))
        except DispatchError as e:
            return BulkFailure(row=row, reference=reference, detail=e.detail, kind=e.kind)
        except Exception as e:
            logger.exception("bulk.row_crashed", row=row, reference=reference)
            return BulkFailure(
                row=row,
                reference=reference,
                detail=f"Unexpected error: {e}",
                kind=DispatchErrorKind.TRANSPORT_ERROR,
            )
        return None
