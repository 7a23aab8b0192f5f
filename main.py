import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from config import settings
from db_models import IdentifyRequest, IdentifyResponse
from db_setup import get_db_connection, init_db
from errors import CorruptLinkage, InvalidInput, StoreError
from reconciler import Reconciler
from store import SqliteContactStore, translate_errors

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Bitespeed Contact Reconciliation API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(StoreError)
@app.exception_handler(CorruptLinkage)
async def internal_error(request: Request, exc: Exception):
    logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def get_store():
    with translate_errors("connect"):
        conn = get_db_connection()
    try:
        yield SqliteContactStore(conn)
    finally:
        conn.close()


def get_reconciler(store: SqliteContactStore = Depends(get_store)) -> Reconciler:
    return Reconciler(store)


@app.get("/")
def root():
    return {"message": "Bitespeed Identity Reconciliation Service is running."}


@app.post("/identify", response_model=IdentifyResponse)
def identify(request: IdentifyRequest, reconciler: Reconciler = Depends(get_reconciler)):
    try:
        contact = reconciler.identify(request.email, request.phoneNumber)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return IdentifyResponse(contact=contact)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
