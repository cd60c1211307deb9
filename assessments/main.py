"""
FastAPI application for the assessment scoring & grading service.

Routers:
- /assessments: authoring, statistics (teacher)
- /assessments/{id}/...: start, timer, answers, submit (student)
- /assignments: grading (teacher)
- /courses: weighted course grades
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assessments.config import settings
from assessments.database import create_db_and_tables
from assessments.errors import NotFoundError, ValidationFailed
from assessments.logging_config import configure_logging
from assessments.routers import assessments as assessments_router_module
from assessments.routers import courses as courses_router_module
from assessments.routers import grading as grading_router_module
from assessments.routers import student as student_router_module

logger = configure_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Scoring strategies, assignment timer and grading workflow",
    version="1.0.0",
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    """Collected field errors from question or score validation."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"errors": exc.errors},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


# Routers
app.include_router(assessments_router_module.router, prefix="/assessments", tags=["assessments"])
app.include_router(student_router_module.router, prefix="/assessments", tags=["student"])
app.include_router(grading_router_module.router, prefix="/assignments", tags=["grading"])
app.include_router(courses_router_module.router, prefix="/courses", tags=["courses"])


@app.on_event("startup")
def on_startup():
    """Initialize database schema."""
    create_db_and_tables()
    logger.info("%s started", settings.PROJECT_NAME)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.PROJECT_NAME}
