from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routers.auth import router as auth_router
from .shared.config import get_settings
from .shared.logger import configure_logging


settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title="MileageMax Auth API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(auth_router)

