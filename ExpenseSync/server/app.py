"""FastAPI application factory.

Errors are answered as ``{"message": ...}``: HTTP errors keep their status,
request validation errors become 400 and anything unexpected becomes 500.
"""
import contextlib
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import database
from .config import settings
from .routes import auth, expenses


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={'message': str(exc.detail)})


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = '.'.join(str(p) for p in first.get('loc', ()) if p != 'body')
        message = f'Invalid value for "{field}": {first.get("msg", "invalid")}' if field else first.get('msg')
    else:
        message = 'Invalid request'
    logging.debug(f'{request.method} {request.url.path} rejected: {message}')
    return JSONResponse(status_code=400, content={'message': message})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.error(f'{request.method} {request.url.path} failed: {exc}', exc_info=exc)
    return JSONResponse(status_code=500, content={'message': 'Something went wrong!'})


def create_app(db: Optional[Database] = None) -> FastAPI:
    """Build the API application.

    Args:
        db: Database to use. Defaults to the configured MongoDB database.

    Returns:
        FastAPI: The application with its routes mounted under ``/api``.
    """

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        database.ensure_indexes(_app.state.db)
        logging.info(f'{settings.PROJECT_NAME} {settings.PROJECT_VERSION} ready')
        yield

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.PROJECT_VERSION, lifespan=lifespan)
    app.state.db = db if db is not None else database.get_database()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=['*'],
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(auth.router, prefix='/api')
    app.include_router(expenses.router, prefix='/api')

    @app.get('/api/health')
    def health():
        return {'status': 'ok'}

    return app
