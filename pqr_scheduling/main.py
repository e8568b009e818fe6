import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from pqr_scheduling.core import config
from pqr_scheduling.core.errors import SchedulingError
from pqr_scheduling.database import init_db
from pqr_scheduling.routes import (
    appointment_routes,
    assignment_routes,
    availability_routes,
    directory_routes,
    holiday_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(title='PQR Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
    else:
        logger.info('%s %s rejected (%s): %s', request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.message, 'error': exc.kind})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error('%s %s hit a database error: %s', request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={'detail': 'Database unavailable. Verify DATABASE_URL and credentials.', 'error': 'dependency_error'},
    )


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'PQR Scheduling API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(holiday_routes.router, prefix='/holidays')
app.include_router(directory_routes.branch_router, prefix='/branches')
app.include_router(directory_routes.appointment_type_router, prefix='/appointment-types')
app.include_router(directory_routes.client_router, prefix='/clients')
app.include_router(assignment_routes.router, prefix='/user-assignments')
