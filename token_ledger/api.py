"""
FastAPI REST API Module

Exposes a single token ledger over HTTP: metadata, balance and allowance
lookups, transfers, approvals and the recorded event history. Amounts travel
as decimal strings because they exceed the JSON-safe integer range.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional
import re
import threading
from fastapi import FastAPI, HTTPException, Depends, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, BeforeValidator, Field
import uvicorn

from .config import create_ledger, get_config
from .errors import LedgerError
from .events import EventDispatcher, EventLog, TokenEvent
from .ledger import TokenLedger, UNLIMITED_ALLOWANCE, MAX_UINT256
from .logging_config import correlation_scope, get_logger, setup_logging


logger = get_logger("token_ledger.api")

# No sign, separators or surrounding whitespace
DIGITS = re.compile(r"[0-9]+")


def parse_amount(value) -> int:
    """Parse a decimal string of ASCII digits into an unsigned 256-bit amount"""
    if isinstance(value, int) and not isinstance(value, bool):
        amount = value
    elif isinstance(value, str) and DIGITS.fullmatch(value):
        amount = int(value)
    else:
        raise ValueError("amount must be a decimal integer string")
    if amount < 0 or amount > MAX_UINT256:
        raise ValueError("amount must be between 0 and 2**256 - 1")
    return amount


Amount = Annotated[int, BeforeValidator(parse_amount)]


class TransferRequest(BaseModel):
    caller: str
    to: str
    amount: Amount = Field(..., description="Decimal amount as string")


class ApproveRequest(BaseModel):
    caller: str
    spender: str
    amount: Amount = Field(..., description="Decimal amount as string")


class TransferFromRequest(BaseModel):
    caller: str
    sender: str
    receiver: str
    amount: Amount = Field(..., description="Decimal amount as string")


class IncreaseAllowanceRequest(BaseModel):
    caller: str
    spender: str
    added_value: Amount = Field(..., description="Decimal amount as string")


class DecreaseAllowanceRequest(BaseModel):
    caller: str
    spender: str
    subtracted_value: Amount = Field(..., description="Decimal amount as string")


class LedgerService:
    """A ledger together with the event history recorded for it"""

    def __init__(self, ledger: TokenLedger, event_log: Optional[EventLog] = None):
        self.ledger = ledger
        self.event_log = event_log

    @classmethod
    def from_config(cls) -> 'LedgerService':
        settings = get_config()
        dispatcher = EventDispatcher()
        # Attach before creation so the initial mint is recorded
        event_log = None
        if settings.api_event_history:
            event_log = EventLog(dispatcher, max_events=settings.api_event_history_size)
        return cls(create_ledger(settings, dispatcher), event_log)


# Process-wide service, built from configuration on first use
ledger_service: Optional[LedgerService] = None
_service_lock = threading.Lock()


app = FastAPI(
    title="Token Ledger API",
    description="Fungible token ledger with balances, allowances and delegated transfers",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


CORRELATION_HEADER = "X-Request-ID"


@app.middleware("http")
async def bind_correlation_id(request: Request, call_next):
    """Tag every log line of a request with its id and echo the id back"""
    with correlation_scope(request.headers.get(CORRELATION_HEADER)) as correlation_id:
        response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


def get_service() -> LedgerService:
    global ledger_service
    service = ledger_service
    if service is None:
        with _service_lock:
            if ledger_service is None:
                ledger_service = LedgerService.from_config()
            service = ledger_service
    return service


def _ledger_failure(e: LedgerError) -> HTTPException:
    logger.info(f"Request rejected by ledger: {e.code}")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/token")
async def get_token(service: LedgerService = Depends(get_service)):
    """Token metadata and current supply"""
    ledger = service.ledger
    return {
        "name": ledger.name,
        "symbol": ledger.symbol,
        "decimals": ledger.decimals,
        "total_supply": str(ledger.total_supply)
    }


@app.get("/balances/{account}")
async def get_balance(account: str, service: LedgerService = Depends(get_service)):
    """Balance of an account"""
    return {"account": account, "balance": str(service.ledger.balance_of(account))}


@app.get("/allowances/{owner}/{spender}")
async def get_allowance(owner: str, spender: str, service: LedgerService = Depends(get_service)):
    """Allowance granted by owner to spender"""
    allowance = service.ledger.allowance_of(owner, spender)
    return {
        "owner": owner,
        "spender": spender,
        "allowance": str(allowance),
        "unlimited": allowance == UNLIMITED_ALLOWANCE
    }


@app.post("/transfer")
async def transfer(request: TransferRequest, service: LedgerService = Depends(get_service)):
    """Transfer from the caller's balance"""
    try:
        success = service.ledger.transfer(request.caller, request.to, request.amount)
    except LedgerError as e:
        raise _ledger_failure(e)
    return {"success": success}


@app.post("/approve")
async def approve(request: ApproveRequest, service: LedgerService = Depends(get_service)):
    """Set a spender's allowance over the caller's balance"""
    try:
        success = service.ledger.approve(request.caller, request.spender, request.amount)
    except LedgerError as e:
        raise _ledger_failure(e)
    return {"success": success}


@app.post("/transfer-from")
async def transfer_from(request: TransferFromRequest, service: LedgerService = Depends(get_service)):
    """Spend an allowance to move tokens out of another account"""
    try:
        success = service.ledger.transfer_from(
            request.caller, request.sender, request.receiver, request.amount
        )
    except LedgerError as e:
        raise _ledger_failure(e)
    return {"success": success}


@app.post("/allowances/increase")
async def increase_allowance(request: IncreaseAllowanceRequest,
                             service: LedgerService = Depends(get_service)):
    """Raise a spender's allowance"""
    try:
        success = service.ledger.increase_allowance(
            request.caller, request.spender, request.added_value
        )
    except LedgerError as e:
        raise _ledger_failure(e)
    return {"success": success}


@app.post("/allowances/decrease")
async def decrease_allowance(request: DecreaseAllowanceRequest,
                             service: LedgerService = Depends(get_service)):
    """Lower a spender's allowance"""
    try:
        success = service.ledger.decrease_allowance(
            request.caller, request.spender, request.subtracted_value
        )
    except LedgerError as e:
        raise _ledger_failure(e)
    return {"success": success}


@app.get("/events")
async def get_events(
    account: Optional[str] = None,
    event_type: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: LedgerService = Depends(get_service)
):
    """Recorded Transfer and Approval events, oldest first"""
    if service.event_log is None:
        raise HTTPException(status_code=404, detail="Event history is disabled")

    kind = None
    if event_type:
        try:
            kind = TokenEvent(event_type)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown event type: {event_type}")

    events = service.event_log.events(
        event_type=kind, account=account, offset=offset, limit=limit
    )
    return {"events": [e.to_dict() for e in events], "count": len(events)}


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    settings = get_config()
    setup_logging(settings.log_level, fmt=settings.log_format)
    uvicorn.run(
        "token_ledger.api:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=debug,
        log_level="info"
    )
