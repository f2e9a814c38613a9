"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from converter.api.routes import router
from converter.config import ALLOWED_FORMATS, CORS_ORIGINS, MAX_FILES, logger as config_logger

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config_logger.info("Converter API started (formats=%s, max_files=%s)", ",".join(ALLOWED_FORMATS), MAX_FILES)
    yield
    config_logger.info("Converter API shutting down")


app = FastAPI(
    title="Image Format Converter API",
    description="Convert images between PNG, JPEG, WebP, AVIF and BMP with resize, quality and batch progress.",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    from converter.config import HOST, PORT
    uvicorn.run("converter.main:app", host=HOST, port=PORT, reload=True)
