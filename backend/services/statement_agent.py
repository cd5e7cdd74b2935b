"""LangChain extraction client: one multimodal request turns a statement document into transactions."""
import asyncio
import json
import logging
import os
import re
import time
from typing import Any, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import StrOutputParser
from langchain_core.runnables import Runnable
from langchain_groq import ChatGroq
from pydantic import TypeAdapter, ValidationError

from models.schemas import Transaction
from services.document_encoder import EncodedDocument
from services.pdf_processor import RenderError, image_bytes_to_base64_jpeg, pdf_to_page_images

logger = logging.getLogger("statement_agent")

DEFAULT_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"
# Groq vision models accept at most 5 images per request
DEFAULT_MAX_PAGES = 5
EXTRACTION_TEMPERATURE = 0.1
EXTRACTION_MAX_TOKENS = 8192

_TRANSACTIONS = TypeAdapter(list[Transaction])
TRANSACTION_SCHEMA: dict[str, Any] = _TRANSACTIONS.json_schema()

EXTRACTION_INSTRUCTIONS = """You are a precise assistant that reads bank statement documents.
Analyze the attached bank statement and extract ALL transactions into a structured list.

Rules:
1. Date: format as YYYY-MM-DD.
2. Amount: use negative numbers for expenses/withdrawals, positive numbers for deposits/income.
3. Description: clean up the text (remove unnecessary codes where possible, but keep identifying info such as the merchant name).
4. Category: infer the category from what the description means (e.g. Groceries, Dining, Transport, Salary, Utilities, Transfer, Shopping, Bills). Other categories are allowed when none of these fit.
5. Notes: any additional reference numbers or relevant details. Omit the field when there is nothing to add.
6. SKIP headers, footers, page numbers, running balances, opening/closing balance lines and summary rows. Only extract actual transactions.
7. If there are multiple pages, extract transactions from all pages in this one response.

Return ONLY a JSON array that validates against this JSON schema, with no markdown or explanation:
{schema}
If no transactions are found, return []."""

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class ExtractionError(Exception):
    """Base class for every way a single extraction request can fail."""


class MissingCredentialsError(ExtractionError):
    pass


class DocumentPreparationError(ExtractionError):
    pass


class ExtractionTransportError(ExtractionError):
    pass


class EmptyResponseError(ExtractionError):
    pass


class ResponseParseError(ExtractionError):
    pass


def build_llm() -> BaseChatModel:
    """Groq chat model for extraction. Raises MissingCredentialsError before any network call."""
    api_key = os.environ.get("GROQ_API_KEY", "").strip()
    if not api_key:
        raise MissingCredentialsError("GROQ_API_KEY is not set")
    model = os.environ.get("STATEMENT_MODEL", "").strip() or DEFAULT_MODEL
    return ChatGroq(
        model=model,
        api_key=api_key,
        temperature=EXTRACTION_TEMPERATURE,
        max_tokens=EXTRACTION_MAX_TOKENS,
        max_retries=0,
    )


def max_pages_from_env() -> int:
    raw = os.environ.get("STATEMENT_MAX_PAGES", "").strip()
    try:
        return int(raw) if raw else DEFAULT_MAX_PAGES
    except ValueError:
        logger.warning("STATEMENT_MAX_PAGES=%r is not an integer, using %d", raw, DEFAULT_MAX_PAGES)
        return DEFAULT_MAX_PAGES


def _document_parts(document: EncodedDocument, max_pages: int) -> list[dict[str, Any]]:
    """One JPEG image part per page; photos and scans are re-encoded the same way as PDF pages."""
    try:
        if document.is_pdf:
            pages = pdf_to_page_images(document.raw(), max_pages)
        else:
            pages = [image_bytes_to_base64_jpeg(document.raw())]
    except RenderError as e:
        raise DocumentPreparationError(str(e)) from e
    return [
        {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{page}"}}
        for page in pages
    ]


def build_messages(document: EncodedDocument, max_pages: int = DEFAULT_MAX_PAGES) -> list[BaseMessage]:
    """System message with the rules and output schema; human message with the document itself."""
    parts = _document_parts(document, max_pages)
    pages_note = f"The statement has {len(parts)} page image(s)." if document.is_pdf else "The statement is attached as an image."
    instructions = EXTRACTION_INSTRUCTIONS.format(schema=json.dumps(TRANSACTION_SCHEMA, indent=2))
    return [
        SystemMessage(content=instructions),
        HumanMessage(content=[{"type": "text", "text": f"{pages_note} Extract every transaction."}, *parts]),
    ]


def _extract_first_json_array(text: str) -> str:
    """First bracket-balanced [...] in text, or "" if there is none."""
    start = text.find("[")
    if start == -1:
        return ""
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        c = text[i]
        if escape:
            escape = False
            continue
        if c == "\\" and in_string:
            escape = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c == "[":
            depth += 1
        elif c == "]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""


def _load_json_array(text: str) -> Any:
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass
    block = _extract_first_json_array(stripped)
    if not block:
        raise ResponseParseError("response is not JSON")
    try:
        return json.loads(block)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"response is not valid JSON: {e}") from e


def parse_transactions(text: Any) -> list[Transaction]:
    """Parse the model's textual reply into transactions, in the order the model returned them."""
    if not isinstance(text, str) or not text.strip():
        raise EmptyResponseError("No response text from the model")
    payload = _load_json_array(text)
    if not isinstance(payload, list):
        raise ResponseParseError(f"expected a JSON array, got {type(payload).__name__}")
    try:
        return _TRANSACTIONS.validate_python(payload)
    except ValidationError as e:
        raise ResponseParseError(f"response does not match the transaction schema: {e}") from e


class StatementExtractor:
    """
    Performs exactly one request/response exchange per document.
    llm can be any chat model or runnable taking a message list; by default a Groq model is built per call.
    """

    def __init__(self, llm: Optional[Runnable] = None, max_pages: Optional[int] = None):
        self._llm = llm
        self._max_pages = max_pages

    async def extract(self, document: EncodedDocument) -> list[Transaction]:
        t0 = time.perf_counter()
        llm = self._llm if self._llm is not None else build_llm()
        max_pages = self._max_pages if self._max_pages is not None else max_pages_from_env()
        messages = await asyncio.to_thread(build_messages, document, max_pages)
        logger.info("extract: calling model, media_type=%s, parts=%d", document.media_type, len(messages[1].content) - 1)

        chain = llm | StrOutputParser()
        t1 = time.perf_counter()
        try:
            text = await chain.ainvoke(messages)
        except Exception as e:
            raise ExtractionTransportError(f"model call failed: {type(e).__name__}: {e}") from e
        logger.info("extract: model replied, len=%d (%.2f s)", len(text or ""), time.perf_counter() - t1)

        transactions = parse_transactions(text)
        logger.info("extract: done, transactions=%d (%.2f s total)", len(transactions), time.perf_counter() - t0)
        return transactions
