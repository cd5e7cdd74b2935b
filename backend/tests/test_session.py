import asyncio

import pytest

from conftest import SAMPLE_TRANSACTIONS, fake_extractor
from models.schemas import ErrorState, IdleState, SuccessState, Transaction
from services.statement_agent import ResponseParseError
from session import GENERIC_ERROR_MESSAGE, SessionBusyError, StatementSession


def _transactions():
    return [Transaction(**t) for t in SAMPLE_TRANSACTIONS]


def test_starts_idle(session):
    assert session.state == IdleState()
    assert session.state.data == []
    assert session.state.error is None
    assert not session.is_busy


def test_select_file_moves_to_processing(session):
    session.select_file("march.pdf")
    assert session.state.status == "processing"
    assert session.state.filename == "march.pdf"
    assert session.state.data == []


def test_second_selection_while_processing_has_no_effect(session):
    request_id = session.select_file("first.pdf")
    before = session.state
    with pytest.raises(SessionBusyError):
        session.select_file("second.pdf")
    assert session.state is before
    assert session.complete(request_id, _transactions())
    assert session.state.filename == "first.pdf"


def test_complete_stores_collection(session):
    request_id = session.select_file("march.pdf")
    assert session.complete(request_id, _transactions())
    assert isinstance(session.state, SuccessState)
    assert session.state.data == _transactions()
    assert session.state.error is None


def test_fail_stores_generic_message_only(session):
    request_id = session.select_file("march.pdf")
    assert session.fail(request_id, ResponseParseError("secret transport detail"))
    assert isinstance(session.state, ErrorState)
    assert session.state.error == GENERIC_ERROR_MESSAGE
    assert "secret" not in session.state.error
    assert session.state.data == []


@pytest.mark.parametrize("settle", ["complete", "fail"])
def test_reset_always_yields_clean_idle(session, settle):
    request_id = session.select_file("march.pdf")
    if settle == "complete":
        session.complete(request_id, _transactions())
    else:
        session.fail(request_id, RuntimeError("boom"))
    session.reset()
    assert session.state.status == "idle"
    assert session.state.data == []
    assert session.state.error is None
    assert session.state.filename is None


def test_result_after_reset_is_discarded(session):
    request_id = session.select_file("march.pdf")
    session.reset()
    assert not session.complete(request_id, _transactions())
    assert session.state == IdleState()


def test_stale_result_does_not_touch_newer_request(session):
    old = session.select_file("old.pdf")
    session.reset()
    new = session.select_file("new.pdf")
    assert not session.fail(old, RuntimeError("late failure"))
    assert session.state.status == "processing"
    assert session.complete(new, [])
    assert session.state.filename == "new.pdf"


def test_reselecting_after_settlement_starts_fresh(session):
    request_id = session.select_file("march.pdf")
    session.fail(request_id, RuntimeError("boom"))
    session.select_file("april.pdf")
    assert session.state.status == "processing"
    assert session.state.error is None
    assert session.state.filename == "april.pdf"


def test_run_settles_success(session, png_document, sample_response):
    request_id = session.select_file("scan.png")
    asyncio.run(session.run(request_id, png_document, fake_extractor(sample_response)))
    assert session.state.status == "success"
    assert [t.model_dump(exclude_none=True) for t in session.state.data] == SAMPLE_TRANSACTIONS


@pytest.mark.parametrize("reply", ["", "   ", "not json at all", '{"date": "2024-01-01"}'])
def test_run_settles_error_without_partial_data(session, png_document, reply):
    request_id = session.select_file("scan.png")
    asyncio.run(session.run(request_id, png_document, fake_extractor(reply)))
    assert session.state.status == "error"
    assert session.state.error == GENERIC_ERROR_MESSAGE
    assert session.state.data == []
