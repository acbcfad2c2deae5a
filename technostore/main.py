import logging
import threading
from contextlib import asynccontextmanager, contextmanager
from typing import Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from technostore.config import settings
from technostore.devnet import Devnet, deploy
from technostore.errors import (
    IndexOutOfRange,
    InsufficientAmount,
    NotOwner,
    ProductAlreadyBought,
    ProductNotBought,
    RefundExpired,
    StoreError,
)
from technostore.models import AddProductRequest, BuyRequest, SignPermitRequest
from technostore.signing import sign_permit

logger = logging.getLogger(__name__)

_STATUS: dict[type, int] = {
    NotOwner: 403,
    IndexOutOfRange: 404,
    InsufficientAmount: 409,
    ProductAlreadyBought: 409,
    ProductNotBought: 409,
    RefundExpired: 409,
}


def _fresh_devnet(seeded: bool = True) -> Devnet:
    from scripts.seed_data import seed

    devnet = deploy(settings)
    if seeded:
        seed(devnet)
    return devnet


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level)
    app.state.devnet = _fresh_devnet(settings.seed_on_startup)
    app.state.lock = threading.Lock()
    yield


app = FastAPI(
    title="TechnoStore",
    version="1.0.0",
    description="Permit-paid retail store running on a local ledger",
    lifespan=lifespan,
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    status = next((code for cls, code in _STATUS.items() if isinstance(exc, cls)), 400)
    logger.warning("%s %s rejected: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": str(exc)})


@contextmanager
def _locked(request: Request):
    """Yield the devnet while holding the app lock."""
    with request.app.state.lock:
        yield request.app.state.devnet


# ── Store ────────────────────────────────────────────────────────────────────

@app.get("/api/v1/store", summary="Store, token and ledger details")
def get_store(request: Request):
    with _locked(request) as devnet:
        return devnet.store.info().model_dump()


# ── Products ─────────────────────────────────────────────────────────────────

@app.get("/api/v1/products", summary="List the catalog in listing order")
def list_products(request: Request):
    with _locked(request) as devnet:
        store = devnet.store
        return {"products": [store.product_view(i).model_dump() for i in range(store.count())]}


@app.get("/api/v1/products/{index}", summary="Get a product and its buyers")
def get_product(index: int, request: Request):
    with _locked(request) as devnet:
        return devnet.store.product_view(index, with_buyers=True).model_dump()


@app.get("/api/v1/products/{index}/purchases/{buyer}", summary="Open purchase of a buyer")
def get_purchase(index: int, buyer: str, request: Request):
    with _locked(request) as devnet:
        return devnet.store.purchase_view(index, buyer).model_dump()


@app.post("/api/v1/products", summary="List or restock a product (owner only)")
def add_product(body: AddProductRequest, request: Request, caller: str = Header(..., alias="X-Caller")):
    with _locked(request) as devnet:
        receipt = devnet.store.add_product(caller, body.name, body.quantity, body.price)
    return receipt.model_dump()


@app.post("/api/v1/products/{index}/buy", summary="Buy one item, paying with a signed permit")
def buy_product(index: int, body: BuyRequest, request: Request, caller: str = Header(..., alias="X-Caller")):
    with _locked(request) as devnet:
        receipt = devnet.store.buy_product(caller, index, body.amount, body.deadline, body.signature)
    return receipt.model_dump()


@app.post("/api/v1/products/{index}/refund", summary="Refund an open purchase")
def refund_product(index: int, request: Request, caller: str = Header(..., alias="X-Caller")):
    with _locked(request) as devnet:
        receipt = devnet.store.refund_product(caller, index)
    return receipt.model_dump()


# ── Ledger ───────────────────────────────────────────────────────────────────

@app.get("/api/v1/balances/{address}", summary="Token balance and permit nonce")
def get_balance(address: str, request: Request):
    with _locked(request) as devnet:
        token = devnet.token
        return {
            "address": address,
            "balance": token.balance_of(address),
            "nonce": token.nonces(address),
            "symbol": token.symbol,
        }


@app.get("/api/v1/events", summary="Ledger event log")
def get_events(
    request: Request,
    event: Optional[str] = Query(default=None, description="Only events with this name"),
):
    with _locked(request) as devnet:
        return {"events": [e.model_dump() for e in devnet.chain.get_logs(event=event)]}


# ── Devnet ───────────────────────────────────────────────────────────────────

@app.get("/api/v1/dev/accounts", summary="Devnet accounts (account 0 owns the store)")
def list_accounts(request: Request):
    with _locked(request) as devnet:
        return {
            "accounts": [
                {"address": a.address, "balance": devnet.token.balance_of(a.address)}
                for a in devnet.accounts
            ]
        }


@app.post("/api/v1/dev/permits", summary="Sign a permit with a devnet account key")
def create_permit(body: SignPermitRequest, request: Request):
    with _locked(request) as devnet:
        signature = sign_permit(
            devnet.account(body.owner),
            devnet.token,
            body.spender or devnet.store.address,
            body.value,
            body.deadline,
        )
    return signature.model_dump()


# ── Admin ─────────────────────────────────────────────────────────────────────

@app.post("/api/v1/admin/mine", summary="Advance the ledger by empty blocks")
def mine(request: Request, blocks: int = Query(default=1, ge=1)):
    with _locked(request) as devnet:
        chain = devnet.chain
        chain.mine(blocks)
        return {"height": chain.height, "timestamp": chain.timestamp}


@app.post("/api/v1/admin/seed", summary="Redeploy and re-seed the devnet")
def reseed(request: Request):
    with request.app.state.lock:
        devnet = request.app.state.devnet = _fresh_devnet()
        return {
            "status": "seeded",
            "store": devnet.store.address,
            "products": devnet.store.count(),
        }
