import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api import curriculum, events
from app.core.config import get_settings
from app.core.deps import get_store
from app.core.errors import StoreError

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Curriculum linking, mastery tracking and AI content audit",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, "http://localhost:4200"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(curriculum.router)
app.include_router(events.router)


@app.get("/health")
def health(store=Depends(get_store)):
    try:
        store.query("SELECT 1 AS ok")
    except StoreError as exc:
        logger.error("[main.health] store unreachable: %s", exc)
        return {"status": "degraded", "store": "unreachable"}
    return {"status": "ok", "store": "ok"}


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "docs": "/docs",
        "health": "/health",
    }
