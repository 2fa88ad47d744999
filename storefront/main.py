from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from storefront.version import VERSION
from storefront.api import cart, categories, orders, products
from storefront.api.deps import get_producer
from storefront.core.errors import StorageError, StorefrontError
from storefront.core.logging import configure_logging

configure_logging()
logger = structlog.get_logger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Storefront Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

def _storage_failure(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Storage failure", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": StorageError.default_message})

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if isinstance(exc, StorageError):
        return _storage_failure(request, exc)
    body = {"success": False, "message": exc.message}
    if exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)

@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    return _storage_failure(request, exc)

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": str(exc.detail)},
                        headers=getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in exc.errors()]
    return JSONResponse(status_code=422, content={"success": False, "message": "Invalid data", "errors": errors})

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "storefront", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("Route registered", methods=sorted(route.methods), path=route.path)

@app.on_event("shutdown")
async def shutdown_event():
    get_producer().close()

app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(products.router, prefix="/products", tags=["products"])
app.include_router(categories.router, prefix="/categories", tags=["categories"])
