import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shop.api import auth, order, payments, products
from shop.config import WEBHOOK_POLICIES, settings
from shop.db_init import init_db
from shop.errors import AppError
from shop.webhooks import stripe_webhook

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("shop.startup")

POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+psycopg"}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _get_cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip() for origin in cors_raw.split(",") if origin.strip()]


def _database_url_problems(database_url: str) -> list[str]:
    parsed = urlparse(database_url)
    if not parsed.scheme:
        return ["missing URL scheme (expected postgresql:// or sqlite://)"]
    if parsed.scheme == "sqlite":
        return []
    if parsed.scheme not in POSTGRES_SCHEMES:
        return [f"unsupported scheme '{parsed.scheme}' (expected postgresql:// or sqlite://)"]

    problems = []
    if not parsed.hostname:
        problems.append("missing host")
    if not parsed.path.lstrip("/"):
        problems.append("missing database name in path")
    return problems


def _validate_database_url_for_runtime(database_url: str) -> None:
    problems = _database_url_problems(database_url)
    if problems:
        raise RuntimeError("Invalid DATABASE_URL: " + "; ".join(problems))


def _db_url_diagnostics(database_url: str) -> str:
    """Connection target without credentials, for startup logs."""
    parsed = urlparse(database_url)
    fields = {
        "scheme": parsed.scheme,
        "host": parsed.hostname,
        "port": parsed.port,
        "database": parsed.path.lstrip("/"),
    }
    return ", ".join(f"{key}={value or '<missing>'}" for key, value in fields.items())


def _provider_warnings() -> list[str]:
    warnings = []
    if not settings.STRIPE_SECRET_KEY:
        warnings.append("STRIPE_SECRET_KEY is not set; Stripe payments are unavailable.")
    elif not settings.STRIPE_WEBHOOK_SECRET:
        warnings.append("STRIPE_WEBHOOK_SECRET is not set; Stripe webhooks will be rejected.")
    if not settings.BKASH_BASE_URL:
        warnings.append("BKASH_BASE_URL is not set; bKash payments are unavailable.")
    return warnings


def _validate_required_env_for_runtime() -> None:
    errors = []

    if not settings.JWT_SECRET.strip():
        errors.append("JWT_SECRET is required.")

    origins = _get_cors_origins(settings.CORS_ORIGINS)
    invalid_origins = [origin for origin in origins if origin != "*" and not _is_http_url(origin)]
    if not origins:
        errors.append("CORS_ORIGINS must list at least one origin.")
    elif invalid_origins:
        errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    policy = settings.WEBHOOK_SETTLEMENT_ERROR_POLICY
    if policy not in WEBHOOK_POLICIES:
        errors.append(
            f"WEBHOOK_SETTLEMENT_ERROR_POLICY must be one of {', '.join(sorted(WEBHOOK_POLICIES))}, got '{policy}'."
        )

    warnings = _provider_warnings()
    if warnings:
        logger.warning("Payment provider configuration: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database_url = settings.DATABASE_URL
        logger.info("Starting Shop API against %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
    except Exception:
        logger.exception("Startup failed")
        raise
    logger.info("Startup complete, webhook settlement error policy: %s", settings.WEBHOOK_SETTLEMENT_ERROR_POLICY)
    yield


app = FastAPI(
    title="Shop API",
    description=(
        "E-commerce backend: products, orders and payments (Stripe/bKash). "
        "Use **Authorize** with the token from `POST /api/auth/login` for protected endpoints."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Register and login (JWT)."},
        {"name": "Products", "description": "Browse products."},
        {"name": "Orders", "description": "Create and manage orders (requires auth)."},
        {"name": "Payments", "description": "Initiate, verify and refund payments."},
        {"name": "Webhooks", "description": "Called by payment providers."},
    ],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.warning(
        "%s - %s - %s %s",
        exc.status_code,
        exc.message,
        request.method,
        request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(order.router, prefix="/api/orders", tags=["Orders"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(stripe_webhook.router, prefix="/webhooks", tags=["Webhooks"])


@app.get("/")
def root():
    return {"status": "ok", "service": "Shop API"}


@app.get("/health")
def health():
    return {"status": "ok"}
