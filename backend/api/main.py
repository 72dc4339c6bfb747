"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import geocode, pickers
from api.sessions import close_all_sessions
from settings import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create app
app = FastAPI(
    title="Xequtive Location Picker API",
    description="Address search, reverse geocoding and map location picking for booking forms",
    version="0.1.0",
)

# CORS middleware for the dashboard frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(geocode.router, prefix="/geocode", tags=["geocode"])
app.include_router(pickers.router, prefix="/pickers", tags=["pickers"])


@app.on_event("shutdown")
def shutdown_event():
    """Unmount every live picker."""
    close_all_sessions()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Xequtive Location Picker API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
