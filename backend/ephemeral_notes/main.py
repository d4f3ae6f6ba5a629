from contextlib import asynccontextmanager

from fastapi import FastAPI

from ephemeral_notes.api import auth, live, notes
from ephemeral_notes.api.live import live_connections
from ephemeral_notes.backend import get_backend
from ephemeral_notes.config import get_settings
from ephemeral_notes.logging_setup import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings().LOG_LEVEL)
    get_backend()
    yield


app = FastAPI(title="Ephemeral Notes API", lifespan=lifespan)

app.include_router(auth.router)
app.include_router(notes.router)
app.include_router(live.router)


@app.get("/health")
def health():
    return {"ok": True, "live_connections": live_connections.count()}
