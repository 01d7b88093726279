from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from answer_engine import __version__
from answer_engine.api.routes import search
from answer_engine.config import settings
from answer_engine.models.schemas import HealthResponse
from answer_engine.services import logger as log_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_service.log_event(event_type="startup", message="Answer engine started", version=__version__)
    yield
    log_service.log_event(event_type="shutdown", message="Answer engine stopped")


app = FastAPI(
    title="Answer Engine",
    description="Cited answers from multi-source web research",
    version=__version__,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(search.router)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", version=__version__)
