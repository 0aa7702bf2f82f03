import logging 
from contextlib import asynccontextmanager

import uvicorn

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from routers import attendance, dashboard
from config import settings
from db import ensure_indexes

PROD_MODE = settings.PRODUCTION_MODE

logging.basicConfig(
    level=logging.INFO,  # Set the logging level to INFO
    format='%(asctime)s - %(levelname)s - %(message)s',  # Log format
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes()
    yield


app = FastAPI(title=settings.PROJECT_TITLE, lifespan=lifespan)

app.include_router(attendance.router, prefix="/attendance", tags=["attendance"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])

# Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials = True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def index():
    return {"message": "Attendance service is running"}


if __name__ == "__main__":
    if PROD_MODE == True:
    # Run Uvicorn without reload in production
        uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT, reload=False)

    else:
        # Run Uvicorn with reload=True in development mode
        uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT, reload=True)
