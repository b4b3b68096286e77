from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

import app.models  # noqa: F401  (registra las tablas en Base.metadata)
from app.api.api_v1.api import api_router
from app.core.config import settings
from app.core.exceptions import FreightError
from app.core.logging import get_logger, setup_logging
from app.db import Base, engine

logger = get_logger(module="main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Crea las tablas si no existen (y el fichero sqlite)
    Base.metadata.create_all(bind=engine)
    logger.info("API arrancada", project=settings.PROJECT_NAME)
    yield


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)


@app.exception_handler(FreightError)
async def freight_error_handler(request: Request, exc: FreightError) -> JSONResponse:
    # Errores de dominio → respuesta tipada; nunca tumban el proceso
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "context": jsonable_encoder(exc.context),
        },
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/", tags=["health"])
def read_root():
    return {"message": "ok"}
