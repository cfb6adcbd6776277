# app/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI

from app.core.config import get_settings
from app.core.sessions import get_registry

# Routers
from app.routers.cart import router as cart_router
from app.routers.checkout import router as checkout_router
from app.routers.recommendations import router as recommendations_router

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Build the session registry and report which authority prices orders.

    Shutdown:
      - Carts are session-only; nothing to flush.
    """
    get_registry()
    if settings.use_supabase:
        logger.info("Startup: pricing, coupons and stock served by Supabase (%s)", settings.SUPABASE_URL)
    else:
        logger.warning("Startup: SUPABASE_URL / SUPABASE_KEY not set, using the in-memory catalog")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(cart_router, prefix=settings.API_V1_STR)
app.include_router(checkout_router, prefix=settings.API_V1_STR)
app.include_router(recommendations_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "nitebite-cart-engine"}
