"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from inboxflow.infrastructure.container import Container, build_container
from inboxflow.infrastructure.logging import configure_logging
from inboxflow.infrastructure.settings import get_settings


def create_app(container: Container | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The container is built on startup unless one is supplied.
    """
    settings = container.settings if container else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Environment: {settings.environment}")

        app.state.container = container or build_container(settings)
        await app.state.container.engine.resume()

        yield

        logger.info("Shutting down...")
        await app.state.container.aclose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Durable email sync, triage and smart replies",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from inboxflow.api.routes import router

    app.include_router(router)

    return app


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
