"""
Main FastAPI application for the character + product fusion API.
Serves health, stateless fusion endpoints, session state machine, and metrics.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fusion.core.config import settings
from fusion.core.logging import configure_logging
from fusion.api.routes import health, images, sessions
from fusion.utils.metrics import router as metrics_router


configure_logging()

app = FastAPI(
    title="Product Fusion Studio API",
    description="Merge a product into a character image with Gemini",
    version="1.0.0",
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173", "http://127.0.0.1:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(images.router)
app.include_router(sessions.router)
app.include_router(metrics_router)
