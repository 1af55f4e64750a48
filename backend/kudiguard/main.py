from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kudiguard import config
from kudiguard.errors import register_exception_handlers
from kudiguard.routes import (
    chat,
    decision,
    feedback,
    financial_entries,
)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="KudiGuard Decision Engine", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(decision.router)  # One-shot decision protocol
app.include_router(chat.router)  # Turn-based dialogue
app.include_router(feedback.router)  # Accept/reject on recommendations
app.include_router(financial_entries.router)  # Baseline data and health score


@app.get("/health")
def health():
    return {"status": "ok", "version": config.API_VERSION}
