import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request

from .. import config
from ..algebra import PaillierAlgebra
from ..coordinator import FulfillmentMessage
from ..db import LedgerDatabase
from ..errors import (
    AuthorizationError,
    FulfillmentPendingError,
    LedgerError,
    NotFoundError,
    StateError,
    ValidationError,
)
from ..events import EventKind
from ..ledger import ConfidentialLedger
from ..logging_config import configure_logging, set_request_id
from .models import CallerRequest, CreateRecordRequest, DepositRequest, FulfillmentRequest

logger = logging.getLogger(__name__)

app = FastAPI(title="cipherledger")

_STATUS = [
    (FulfillmentPendingError, 425),
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (StateError, 409),
]

LEDGER: Optional[ConfidentialLedger] = None


def build_ledger() -> ConfidentialLedger:
    """Assemble a ledger from the environment configuration."""
    return ConfidentialLedger(
        algebra=PaillierAlgebra(config.load_public_key()),
        trust_store=config.load_trust_store(),
        withdrawer=config.WITHDRAWER,
        weights=config.load_weight_table(),
        db=LedgerDatabase(config.DB_PATH),
        minimum_payment=config.MIN_PAYMENT,
        environment_id=config.ENVIRONMENT_ID,
        ledger_id=config.LEDGER_ID,
    )


def install_ledger(ledger: Optional[ConfidentialLedger]) -> None:
    global LEDGER
    LEDGER = ledger


@app.on_event("startup")
def _startup():
    global LEDGER
    if LEDGER is not None:
        return
    configure_logging(config.LOG_LEVEL, json_format=config.is_production())
    missing = [name for name, ok in config.validate_config().items() if not ok]
    if missing:
        logger.warning("configuration files missing: %s", ", ".join(missing))
    LEDGER = build_ledger()


@app.middleware("http")
async def _request_id(request: Request, call_next):
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def _ledger() -> ConfidentialLedger:
    if LEDGER is None:
        raise HTTPException(503, "LEDGER_NOT_READY")
    return LEDGER


def _http_error(e: LedgerError) -> HTTPException:
    for cls, status in _STATUS:
        if isinstance(e, cls):
            return HTTPException(status, e.to_dict())
    logger.error("unmapped ledger error: %s", e)
    return HTTPException(500, e.to_dict())


@app.get("/health")
def health():
    return {"status": "ok", "records": _ledger().record_count()}


@app.post("/records")
def create_record(req: CreateRecordRequest):
    ledger = _ledger()
    try:
        record_id = ledger.create_record(
            req.owner, req.ciphertexts, req.proof.model_dump(), req.payment
        )
    except LedgerError as e:
        raise _http_error(e) from e
    return {"record_id": record_id}


@app.get("/records/{record_id}")
def get_record(record_id: int):
    try:
        metadata = _ledger().get_record_metadata(record_id)
    except LedgerError as e:
        raise _http_error(e) from e
    return {"record_id": record_id, **metadata}


@app.get("/owners/{owner}/records")
def list_records(owner: str):
    ledger = _ledger()
    return {
        "owner": owner,
        "record_ids": ledger.list_records(owner),
        "count": ledger.record_count_by_owner(owner),
    }


@app.get("/records/{record_id}/score")
def get_encrypted_score(record_id: int, caller: str):
    ledger = _ledger()
    try:
        handle = ledger.get_encrypted_score(record_id, caller)
    except LedgerError as e:
        raise _http_error(e) from e
    return {
        "record_id": record_id,
        "score_handle": handle,
        "ciphertext": ledger.store.load_ciphertext(handle),
    }


@app.post("/records/{record_id}/decryption")
def request_decryption(record_id: int, req: CallerRequest):
    ledger = _ledger()
    try:
        ledger.request_decrypt(record_id, req.caller)
    except LedgerError as e:
        raise _http_error(e) from e
    return {"record_id": record_id, "state": ledger.decryption_state(record_id).value}


@app.get("/records/{record_id}/decryption")
def retrieve_decryption(record_id: int, caller: str):
    try:
        score = _ledger().retrieve_decrypt(record_id, caller)
    except LedgerError as e:
        raise _http_error(e) from e
    return {"record_id": record_id, "score": score}


@app.post("/oracle/fulfill")
def fulfill(req: FulfillmentRequest):
    try:
        accepted = _ledger().fulfill_decryption(FulfillmentMessage(**req.model_dump()))
    except LedgerError as e:
        raise _http_error(e) from e
    return {"record_id": req.record_id, "accepted": accepted}


@app.post("/deposit")
def deposit(req: DepositRequest):
    try:
        balance = _ledger().deposit(req.sender, req.amount)
    except LedgerError as e:
        raise _http_error(e) from e
    return {"balance": balance}


@app.post("/withdraw")
def withdraw(req: CallerRequest):
    try:
        amount = _ledger().withdraw(req.caller)
    except LedgerError as e:
        raise _http_error(e) from e
    return {"amount": amount}


@app.get("/balance")
def balance():
    return {"balance": _ledger().get_balance()}


@app.get("/events")
def events(kind: Optional[EventKind] = None):
    return [event.to_dict() for event in _ledger().events(kind)]


@app.get("/events/verify")
def verify_events():
    valid, reason = _ledger().verify_event_chain()
    return {"valid": valid, "reason": reason}
