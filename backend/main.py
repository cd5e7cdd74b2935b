import logging
import os
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("statement_ocr_app")

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from models.schemas import CsvTextResponse, StateResponse
from services.csv_export import CSV_FILENAME, CSV_MEDIA_TYPE, transactions_to_csv
from services.document_encoder import DocumentReadError, encode_upload, is_supported_media_type
from services.statement_agent import StatementExtractor
from services.table_view import summarize
from session import SessionBusyError, StatementSession

app = FastAPI(title="Bank Statement OCR")
app.state.session = StatementSession()

# CORS: allow origins from ALLOWED_ORIGINS (comma-separated); if unset, allow the local frontend dev servers.
_origins_raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
if _origins_raw:
    _origins_list = [o.strip().rstrip("/") for o in _origins_raw.split(",") if o.strip()]
else:
    _origins_list = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


MAX_FILE_SIZE = 20 * 1024 * 1024  # 20 MB
UNSUPPORTED_TYPE_MESSAGE = "Please upload a PDF or an image file (JPG, PNG, WEBP, HEIC)."

if not os.environ.get("GROQ_API_KEY", "").strip():
    logger.warning("GROQ_API_KEY is not set; statement extraction will fail until it is configured")


def get_session(request: Request) -> StatementSession:
    return request.app.state.session


def get_extractor() -> StatementExtractor:
    return StatementExtractor()


def _state_response(session: StatementSession) -> StateResponse:
    state = session.state
    return StateResponse(
        status=state.status,
        filename=state.filename,
        data=state.data,
        error=state.error,
        summary=summarize(state.data) if state.status == "success" else None,
    )


def _exportable(session: StatementSession):
    state = session.state
    if state.status != "success" or not state.data:
        raise HTTPException(409, "No transactions to export")
    return state.data


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/state", response_model=StateResponse)
def get_state(session: StatementSession = Depends(get_session)):
    return _state_response(session)


@app.post("/api/statement", response_model=StateResponse, status_code=202)
async def upload_statement(
    response: Response,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    session: StatementSession = Depends(get_session),
    extractor: StatementExtractor = Depends(get_extractor),
):
    t0 = time.perf_counter()
    filename = file.filename or "statement"
    logger.info("statement: upload started, filename=%s, content_type=%s", filename, file.content_type)
    if not is_supported_media_type(file.content_type):
        raise HTTPException(415, UNSUPPORTED_TYPE_MESSAGE)
    if file.size is not None and file.size > MAX_FILE_SIZE:
        raise HTTPException(413, "File too large")

    try:
        request_id = session.select_file(filename)
    except SessionBusyError as e:
        raise HTTPException(409, str(e))

    try:
        document = await encode_upload(file)
    except DocumentReadError as e:
        session.fail(request_id, e)
        response.status_code = 422
        return _state_response(session)

    background_tasks.add_task(session.run, request_id, document, extractor)
    logger.info("statement: request_id=%s queued (%.2f s)", request_id, time.perf_counter() - t0)
    return _state_response(session)


@app.post("/api/reset", response_model=StateResponse)
def reset(session: StatementSession = Depends(get_session)):
    session.reset()
    return _state_response(session)


@app.get("/api/transactions.csv")
def download_csv(session: StatementSession = Depends(get_session)):
    transactions = _exportable(session)
    return Response(
        content=transactions_to_csv(transactions),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
    )


@app.get("/api/transactions/csv-text", response_model=CsvTextResponse)
def csv_text(session: StatementSession = Depends(get_session)):
    return CsvTextResponse(csv=transactions_to_csv(_exportable(session)))
