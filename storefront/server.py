"""
FastAPI application for the Lunia storefront.

Run with:
    python -m storefront.server
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import settings
from .api import router as api_router
from .database import close_db, init_db

logging.basicConfig(
    level=os.environ.get("STOREFRONT_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("storefront-server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Lunia Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.SITE_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "payments": bool(settings.STRIPE_SECRET_KEY),
        "email": bool(settings.RESEND_API_KEY),
    }


def main() -> None:
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    logger.info("Starting storefront API on port %d", port)
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
