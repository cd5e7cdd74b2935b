import io
import json

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from PIL import Image

from main import app, get_extractor
from services.document_encoder import EncodedDocument, encode_bytes
from services.statement_agent import StatementExtractor
from session import StatementSession

SAMPLE_TRANSACTIONS = [
    {"date": "2024-01-02", "description": "Payroll ACME Corp", "amount": 100, "category": "Salary", "notes": "REF 7781"},
    {"date": "2024-01-05", "description": 'Coffee "Shop"', "amount": -30.5, "category": "Dining", "notes": ""},
    {"date": "2024-01-09", "description": "City Metro", "amount": -9.5, "category": "Transport"},
]


def image_bytes(fmt: str = "PNG", size: tuple[int, int] = (64, 48)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (240, 240, 235)).save(buf, format=fmt)
    return buf.getvalue()


def fake_extractor(*responses: str) -> StatementExtractor:
    return StatementExtractor(llm=FakeListChatModel(responses=list(responses)), max_pages=5)


@pytest.fixture
def png_document() -> EncodedDocument:
    return encode_bytes(image_bytes("PNG"), "image/png")


@pytest.fixture
def sample_response() -> str:
    return json.dumps(SAMPLE_TRANSACTIONS)


@pytest.fixture
def session() -> StatementSession:
    return StatementSession()


@pytest.fixture
def client(session):
    app.state.session = session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.session = StatementSession()


@pytest.fixture
def use_extractor():
    """Route uploads to the given extractor instead of the Groq-backed default."""

    def _use(extractor: StatementExtractor) -> None:
        app.dependency_overrides[get_extractor] = lambda: extractor

    return _use
