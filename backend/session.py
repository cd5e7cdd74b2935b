"""In-memory processing state for the one active session: idle -> processing -> success | error."""
import logging
import uuid
from typing import Iterable, Optional

from models.schemas import (
    ErrorState,
    IdleState,
    ProcessingInFlight,
    ProcessingState,
    SuccessState,
    Transaction,
)
from services.document_encoder import EncodedDocument
from services.statement_agent import StatementExtractor

logger = logging.getLogger("statement_session")

GENERIC_ERROR_MESSAGE = (
    "Failed to process the document. Please ensure it's a clear image or PDF of a bank statement."
)


class SessionBusyError(Exception):
    """A file was selected while another one is still being processed."""


def create_request_id() -> str:
    return str(uuid.uuid4())


class StatementSession:
    """
    Holds exactly one ProcessingState. A new file is accepted only when nothing is processing;
    results that settle after a reset (or for a superseded request) are dropped.
    """

    def __init__(self) -> None:
        self._state: ProcessingState = IdleState()
        self._request_id: Optional[str] = None

    @property
    def state(self) -> ProcessingState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state.status == "processing"

    def select_file(self, filename: str) -> str:
        if self.is_busy:
            raise SessionBusyError(f"Still processing {self._state.filename}")
        request_id = create_request_id()
        self._request_id = request_id
        self._state = ProcessingInFlight(filename=filename)
        logger.info("select_file: %s -> processing, request_id=%s", filename, request_id)
        return request_id

    def _is_current(self, request_id: str) -> bool:
        return self.is_busy and request_id == self._request_id

    def complete(self, request_id: str, transactions: Iterable[Transaction]) -> bool:
        if not self._is_current(request_id):
            logger.info("complete: discarding result of stale request_id=%s", request_id)
            return False
        self._state = SuccessState(filename=self._state.filename, data=list(transactions))
        self._request_id = None
        logger.info("complete: request_id=%s -> success, transactions=%d", request_id, len(self._state.data))
        return True

    def fail(self, request_id: str, cause: BaseException) -> bool:
        if not self._is_current(request_id):
            logger.info("fail: discarding error of stale request_id=%s (%s)", request_id, type(cause).__name__)
            return False
        logger.error("fail: request_id=%s -> error: %s: %s", request_id, type(cause).__name__, cause, exc_info=cause)
        self._state = ErrorState(filename=self._state.filename, error=GENERIC_ERROR_MESSAGE)
        self._request_id = None
        return True

    def reset(self) -> None:
        if self._request_id is not None:
            logger.info("reset: request_id=%s still in flight, its result will be discarded", self._request_id)
        self._state = IdleState()
        self._request_id = None

    async def run(
        self,
        request_id: str,
        document: EncodedDocument,
        extractor: Optional[StatementExtractor] = None,
    ) -> None:
        """Run the single extraction for request_id and settle the state with its outcome."""
        extractor = extractor or StatementExtractor()
        try:
            transactions = await extractor.extract(document)
        except Exception as e:
            self.fail(request_id, e)
            return
        self.complete(request_id, transactions)
