from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth import AuthService
from .config import CONFIG, legacy_key
from .db import get_local_store
from .migration import FernetCipher
from .routes import moods as mood_routes
from .routes import profile as profile_routes
from .routes import session as session_routes
from .routes import tracking as tracking_routes
from .routes import vaccines as vaccine_routes
from .schedule import load_schedule_table
from .session import SessionController

logger = logging.getLogger(__name__)


def build_controller() -> SessionController:
    key = legacy_key()
    if key is None:
        logger.info("MAMACARE_LEGACY_KEY not set; legacy profile import disabled")
    return SessionController(
        store=get_local_store(),
        auth=AuthService.from_env(),
        schedule_table=load_schedule_table(),
        cipher=FernetCipher(key) if key else None,
        legacy_key=CONFIG.legacy_profile_key,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    controller = build_controller()
    await controller.start()
    app.state.controller = controller
    yield


app = FastAPI(
    title="MamaCare API",
    version="0.1.0",
    description="Pregnancy and early-parenthood companion: profile, moods and vaccine schedules",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(session_routes.router)
app.include_router(profile_routes.router)
app.include_router(mood_routes.router)
app.include_router(vaccine_routes.router)
app.include_router(tracking_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
