import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from roastmyapp.config import get_settings
from roastmyapp.models.base import init_db
from roastmyapp.api import applications, feedbacks, roast_requests, users

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize database tables
    await init_db()
    yield


app = FastAPI(
    title="RoastMyApp API",
    description="Marketplace where creators get paid feedback on their apps from roasters",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(roast_requests.router, prefix="/roast-requests", tags=["roast-requests"])
app.include_router(applications.router, prefix="/applications", tags=["applications"])
app.include_router(feedbacks.router, prefix="/feedbacks", tags=["feedbacks"])
app.include_router(users.router, prefix="/users", tags=["users"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {"message": "RoastMyApp API", "docs": "/docs"}
