import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spinmate.core.config import settings
from spinmate.api import matches, players, tournaments

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(players.router, prefix=settings.API_V1_STR)
app.include_router(matches.router, prefix=settings.API_V1_STR)
app.include_router(tournaments.router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "Welcome to SpinMate API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}
