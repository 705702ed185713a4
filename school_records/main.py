import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from school_records.api.admin.router import router as admin_router
from school_records.api.grades.router import router as grades_router
from school_records.api.marks.router import router as marks_router
from school_records.api.monitoring.router import router as monitoring_router
from school_records.api.quarters.router import router as quarters_router
from school_records.api.students.router import router as students_router
from school_records.api.subjects.router import router as subjects_router
from school_records.api.years.router import router as years_router
from school_records.core.config import settings
from school_records.core.logging_config import configure_logging
from school_records.db.session import create_tables

logger = logging.getLogger(__name__)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        await create_tables()
    logger.info("School records API started")
    yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="School Records Backend", lifespan=lifespan)

    # CORS: the admin panel is served from a different origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Routers
    app.include_router(admin_router)
    app.include_router(years_router)
    app.include_router(grades_router)
    app.include_router(quarters_router)
    app.include_router(subjects_router)
    app.include_router(students_router)
    app.include_router(marks_router)
    app.include_router(monitoring_router)

    return app


app = create_app()
