import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

import database
import settings
from errors import register_exception_handlers
from routers import admin, auth, cart, categories, coupons, orders, payments, products, reviews, seller, users
from seed import seed as seed_database
from utils import now

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("marketplace")

STARTED_AT = time.monotonic()
ROUTERS = (auth, users, products, reviews, categories, cart, orders, coupons, seller, admin, payments)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; API will answer 503 on data routes")
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="Marketplace Backend", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        session_cookie=settings.SESSION_COOKIE,
        max_age=settings.SESSION_MAX_AGE,
        same_site="lax",
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed)
        return response

    register_exception_handlers(app)
    for module in ROUTERS:
        app.include_router(module.router, prefix=settings.API_PREFIX)

    # ----------------------- Health -----------------------
    @app.get("/")
    def root():
        return {"success": True, "message": "Marketplace API running", "api": settings.API_PREFIX}

    @app.get("/health")
    def health():
        return {
            "status": "OK",
            "timestamp": now().isoformat(),
            "uptime": round(time.monotonic() - STARTED_AT, 1),
        }

    @app.get("/test")
    def test_database():
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
            "database_name": "✅ Set" if settings.DATABASE_NAME else "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            if database.db is not None:
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
                response["collections"] = database.db.list_collection_names()[:10]
        except Exception as e:
            response["database"] = f"❌ Error: {str(e)[:80]}"
        return response

    # ----------------------- Seed Demo Data -----------------------
    @app.post("/seed")
    def seed(db=Depends(database.get_db)):
        return {"success": True, "data": seed_database(db)}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
