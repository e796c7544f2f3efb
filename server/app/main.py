from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from server.app.routers import analyze as analyze_router
from server.app.routers import chat as chat_router
from server.app.routers import logs as logs_router
from server.app.routers import providers as providers_router
from server.app.routers import status as status_router
from server.app.config import settings as C
from server.app.services.fallback import ProviderKeys

logging.basicConfig(
    level=getattr(logging, C.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

app = FastAPI(title="image-muse-server")

app.add_middleware(
    CORSMiddleware,
    allow_origins=C.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all routers
app.include_router(status_router.router)
app.include_router(analyze_router.router)
app.include_router(providers_router.router)
app.include_router(chat_router.router)
app.include_router(logs_router.router)


@app.exception_handler(StarletteHTTPException)
async def _http_error(_request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError):
    return JSONResponse({"error": "Invalid request"}, status_code=400)


@app.exception_handler(Exception)
async def _unhandled_error(_request: Request, exc: Exception):
    log.exception("Unhandled server error: %s", exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.on_event("startup")
async def _startup_log():
    configured = ProviderKeys.resolve({}, C).enabled()
    log.info(
        "[server] providers with server-side keys: %s", ", ".join(configured) or "none"
    )
    log.info("[server] gemini models: %s", ", ".join(C.gemini_model_list()))
    log.info(
        "[server] Routes: /health /status /analyze-image /ai/providers /ai-chat /logs"
    )


@app.get("/")
async def root():
    return {"message": "Image Muse server"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=C.PORT)
