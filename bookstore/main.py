from datetime import date
from typing import Optional

from fastapi import FastAPI
from loguru import logger
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator

from bookstore.version import VERSION
from bookstore.api import auth, books, genres, transactions
from bookstore.core.config import Settings, settings as default_settings
from bookstore.core.errors import setup_exception_handlers
from bookstore.core.logging import configure_logging, install_request_logging
from bookstore.db.gateway import Gateway
from bookstore.utils.response import success


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title='Bookstore API', version=VERSION)
    app.state.settings = settings
    app.state.gateway = Gateway.from_settings(settings)

    # Instrument the app BEFORE adding routes or middleware; each app gets its own registry
    instrumentator = Instrumentator(registry=CollectorRegistry())
    instrumentator.instrument(app).expose(app, include_in_schema=False, endpoint='/metrics', should_gzip=True)

    install_request_logging(app)
    setup_exception_handlers(app)

    @app.get('/health')
    def health(): return {'status': 'ok'}

    @app.get('/v1/_info')
    def info(): return {'service': 'bookstore', 'version': VERSION}

    @app.get('/health-check')
    def health_check():
        return success(date.today().strftime('%a %b %d %Y'), 'Hello World!')

    @app.on_event('startup')
    async def startup_event():
        if settings.CREATE_SCHEMA:
            app.state.gateway.create_schema()
        for route in app.routes:
            if hasattr(route, 'methods') and hasattr(route, 'path'):
                logger.debug(f"{sorted(route.methods)} {route.path}")
        logger.info(f"Bookstore API {VERSION} started")

    @app.on_event('shutdown')
    async def shutdown_event():
        app.state.gateway.dispose()

    app.include_router(auth.router, prefix='/auth', tags=['auth'])
    app.include_router(genres.router, prefix='/genre', tags=['genre'])
    app.include_router(books.router, prefix='/books', tags=['books'])
    app.include_router(transactions.router, prefix='/transactions', tags=['transactions'])
    return app


app = create_app()
