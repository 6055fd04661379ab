# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import os
import logging
import sentry_sdk
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from codedrill.config import get_engine_config
from codedrill.database import engine, Base
from codedrill.exceptions import NotFoundError, PlanStateError, ValidationFailed
from codedrill.routers import questions, reviews, users, training_plans, problems

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error monitoring
sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
        environment=os.getenv("ENVIRONMENT", "development"),
    )

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - runs on startup and shutdown."""
    config = get_engine_config()
    logger.info(
        "CodeDrill starting: sandbox=%s text_threshold=%.2f hint_levels=%d",
        config.sandbox_url, config.text_similarity_threshold, config.max_hint_level,
    )

    yield  # Application runs here

    logger.info("Shutting down...")

# OpenAPI tag metadata for organized documentation
tags_metadata = [
    {
        "name": "questions",
        "description": "Question bank browsing, progressive hints and answer submission.",
    },
    {
        "name": "reviews",
        "description": "Spaced repetition (SM-2) review queue.",
    },
    {
        "name": "users",
        "description": "Per-topic proficiency, streaks and attempt history for the signed-in user.",
    },
    {
        "name": "training-plans",
        "description": "Multi-day practice plans with adaptive difficulty.",
    },
    {
        "name": "problems",
        "description": "Problem difficulty breakdowns and recalibration.",
    },
]

app = FastAPI(
    title="CodeDrill API",
    description="""
## CodeDrill Coding-Interview Learning Engine

Grades answers to coding-interview questions and schedules what to practice next.

### Features
- **Answer Evaluation** - Multiple choice, ranking, free text and sandboxed code
- **Spaced Repetition** - SM-2 review scheduling per question
- **Topic Proficiency** - Mastery tracking with review dates
- **Training Plans** - Day-by-day question plans that adapt to recent accuracy
    """,
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=tags_metadata,
)

# CORS middleware for the web frontend
# SECURITY: Explicitly list allowed origins - no wildcards
ALLOWED_ORIGINS = [
    "http://localhost:3000",  # Frontend dev server
    "http://localhost:3001",  # Frontend dev server (alternate port)
]

# Allow additional origins from environment (for preview deploys)
extra_origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
if extra_origins:
    ALLOWED_ORIGINS.extend([o.strip() for o in extra_origins.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=exc.to_dict())


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(PlanStateError)
async def plan_state_handler(request: Request, exc: PlanStateError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": exc.message, "status": exc.status},
    )


# Include routers
app.include_router(questions.router)
app.include_router(reviews.router)  # Spaced repetition
app.include_router(users.router)  # Skills, streaks, history
app.include_router(training_plans.router)
app.include_router(problems.router)  # Difficulty scoring


@app.get("/")
def root():
    return {
        "message": "CodeDrill API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
