# backend/stockdb/main.py
import os
from typing import List

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import (
    AuthorizationError,
    InsufficientStockError,
    InvalidStateError,
    InventoryError,
    LocationMismatchError,
    NotFoundError,
    ValidationError,
)

from .apps.audit.router import router as audit_router
from .apps.warehouses.router import router as warehouses_router
from .apps.inventory.router import router as inventory_router
from .apps.batches.router import router as batches_router
from .apps.stock_audit.router import router as stock_audit_router
from .apps.custody.router import router as custody_router


# Checked in order; subclasses before their parents.
ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InsufficientStockError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (LocationMismatchError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:4173",
    ]


def status_for(exc: InventoryError) -> int:
    for error_cls, code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


app = FastAPI(title="Stock DB API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InventoryError)
def handle_inventory_error(request: Request, exc: InventoryError):
    return JSONResponse(status_code=status_for(exc), content=exc.to_dict())


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Stock DB backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(audit_router)
app.include_router(warehouses_router)
app.include_router(inventory_router)
app.include_router(batches_router)
app.include_router(stock_audit_router)
app.include_router(custody_router)
