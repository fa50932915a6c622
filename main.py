import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import config
import database
from errors import ServiceError
from identity import IdentityProvider
from llm import ChatClient
from paystack import PaystackClient
from routers import ALL as ROUTERS

logger = logging.getLogger(__name__)


def create_app(
    db: Optional[Database] = None,
    identity: Optional[IdentityProvider] = None,
    chat_client: Optional[ChatClient] = None,
    payments: Optional[PaystackClient] = None,
) -> FastAPI:
    """Build the application.

    Handles passed in are used as is and left open; missing ones are created
    from ``config`` on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = []
        client = None
        if db is None:
            client, app.state.db = database.connect(config.DATABASE_URL, config.DATABASE_NAME)
            database.ensure_indexes(app.state.db)
        else:
            app.state.db = db
        if identity is None:
            app.state.identity = IdentityProvider(config.FIREBASE_PROJECT_ID, config.GOOGLE_APPLICATION_CREDENTIALS)
            app.state.identity.initialize()
            owned.append(app.state.identity)
        else:
            app.state.identity = identity
        if chat_client is None:
            app.state.chat_client = ChatClient(
                config.OPENROUTER_API_KEY,
                base_url=config.OPENROUTER_BASE_URL,
                referer=config.OPENROUTER_REFERER,
                title=config.OPENROUTER_TITLE,
                timeout=config.HTTP_TIMEOUT_SECONDS,
            )
            owned.append(app.state.chat_client)
        else:
            app.state.chat_client = chat_client
        if payments is None:
            app.state.payments = PaystackClient(
                config.PAYSTACK_SECRET_KEY,
                public_key=config.PAYSTACK_PUBLIC_KEY,
                base_url=config.PAYSTACK_BASE_URL,
                timeout=config.HTTP_TIMEOUT_SECONDS,
            )
            owned.append(app.state.payments)
        else:
            app.state.payments = payments
        logger.info("Application started")
        try:
            yield
        finally:
            for handle in owned:
                handle.close()
            database.close(client)
            logger.info("Application stopped")

    app = FastAPI(title="Zlma AI API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    for router in ROUTERS:
        app.include_router(router)
    return app


config.configure_logging()
app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
