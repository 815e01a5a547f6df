"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from luminascale.api.routes import router
from luminascale.config import CORS_ORIGINS, ENHANCE_API_URL, logger as config_logger
from luminascale.enhance.client import get_enhancement_client
from luminascale.errors import LuminaError

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config_logger.info("LuminaScale API started (enhancement endpoint: %s)", ENHANCE_API_URL)
    yield
    await get_enhancement_client().close()
    config_logger.info("LuminaScale API shutting down")


app = FastAPI(
    title="LuminaScale API",
    description="Upload a photo, enhance it remotely, then rotate, crop and fine-tune it locally.",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def lumina_error_handler(request: Request, exc: LuminaError):
    """Render intake, decode and enhancement errors with their user-facing message."""
    if exc.detail:
        config_logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.error_code, exc.detail)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


app.add_exception_handler(LuminaError, lumina_error_handler)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    from luminascale.config import HOST, PORT
    uvicorn.run("luminascale.main:app", host=HOST, port=PORT, reload=True)
