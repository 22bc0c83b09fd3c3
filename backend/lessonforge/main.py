import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lessonforge.api import generation, health
from lessonforge.core.config import get_settings
from lessonforge.core.errors import AIError, VALIDATION_ERROR

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("lessonforge.main")

app = FastAPI(
    title=settings.app_name,
    description="LLM-driven worksheet and presentation generation",
    version="0.1.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:5173",  # Vite dev server
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AIError)
async def ai_error_handler(request: Request, exc: AIError):
    logger.warning("%s %s failed with %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=502, content={"status": "error", "code": exc.code})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"status": "error", "code": VALIDATION_ERROR, "details": details},
    )


# Include routers
app.include_router(health.router)
app.include_router(generation.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "docs": "/docs",
        "health": "/health",
    }
