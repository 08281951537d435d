import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables from backend/.env before importing routes
BASE_DIR = Path(__file__).resolve().parent.parent  # backend/vocab_exam -> backend
load_dotenv(BASE_DIR / ".env")

from vocab_exam.api.routes import analytics, auth, exam, grading, word_sets  # noqa: E402
from vocab_exam.core.config import settings  # noqa: E402
from vocab_exam.core.database import init_db  # noqa: E402
from vocab_exam.core.exceptions import VocabExamError  # noqa: E402
from vocab_exam.core.logging_config import setup_logging  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("%s started", settings.APP_NAME)
    yield
    logger.info("%s stopped", settings.APP_NAME)


app = FastAPI(title="VocabExams API", version="1.0.0", lifespan=lifespan)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VocabExamError)
async def vocab_exam_error_handler(request: Request, exc: VocabExamError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(exam.router, prefix="/api/exam", tags=["exam"])
app.include_router(word_sets.router, prefix="/api/word-sets", tags=["word-sets"])
app.include_router(grading.router, prefix="/api/grading", tags=["grading"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["analytics"])


@app.get("/")
def root():
    return {"message": "VocabExams API"}


@app.get("/health")
def health():
    return {"status": "healthy"}
