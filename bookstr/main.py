from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bookstr.api.routes import book_types, search, sources
from bookstr.config import settings
from bookstr.services.logger import log_event


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log_event("startup", "bookstr API starting", sources=len(settings.source_url_list))
    yield
    # Shutdown


app = FastAPI(
    title="bookstr",
    description="Citation resolution across federated content sources",
    version="0.1.0",
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
app.include_router(book_types.router)
app.include_router(sources.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "bookstr"}
