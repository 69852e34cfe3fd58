import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
import settings
from database import now
from errors import APIError
import orders
import products
import users
import wishlist

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.ensure_indexes()
    yield


app = FastAPI(title="ShopKart API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router)
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(wishlist.router)


if not settings.IS_PRODUCTION:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response


# Error handlers

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error(404, f"Not Found - {request.url.path}")
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return _error(400, "Invalid request")
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "Invalid value")
    return _error(400, f"{field}: {message}" if field else message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error" if settings.IS_PRODUCTION else str(exc))


# Routes

@app.get("/")
def root():
    return {
        "success": True,
        "message": "Welcome to ShopKart API",
        "version": app.version,
        "endpoints": {
            "users": "/api/users",
            "products": "/api/products",
            "orders": "/api/orders",
            "wishlist": "/api/wishlist",
            "health": "/health",
        },
    }


@app.get("/health")
def health():
    return {
        "success": True,
        "message": "ShopKart API is running!",
        "timestamp": now().isoformat(),
        "environment": settings.ENVIRONMENT,
    }


@app.get("/test")
def test_database():
    db = database.db
    resp = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if settings.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    if db is None:
        return resp
    try:
        resp["collections"] = db.list_collection_names()[:10]
        resp["database"] = "✅ Connected & Working"
        resp["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        resp["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return resp


@app.get("/api/config/paypal", response_class=PlainTextResponse)
def paypal_config():
    return settings.PAYPAL_CLIENT_ID


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
