import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from feecycle.api.v1.batches.router import router as batches_router
from feecycle.api.v1.credits.router import router as credits_router
from feecycle.api.v1.fees.router import router as fees_router
from feecycle.api.v1.reconciliation.router import router as reconciliation_router
from feecycle.api.v1.students.router import router as students_router
from feecycle.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fee Cycle Backend")

    # CORS: allow the admin frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Routers
    app.include_router(students_router)
    app.include_router(batches_router)
    app.include_router(fees_router)
    app.include_router(credits_router)
    app.include_router(reconciliation_router)

    return app


app = create_app()
