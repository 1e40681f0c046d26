from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modelkeeper.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    from modelkeeper.services.model_manager import ModelManager

    if getattr(app.state, "model_manager", None) is None:
        settings.models_dir.mkdir(parents=True, exist_ok=True)
        app.state.model_manager = ModelManager.from_settings(settings)
    await app.state.model_manager.initialize()
    yield
    app.state.model_manager.cancel_download()


def create_app(manager=None) -> FastAPI:
    application = FastAPI(
        title="ModelKeeper", version="0.1.0", lifespan=lifespan
    )
    application.state.model_manager = manager

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from modelkeeper.routers import health, models

    application.include_router(health.router)
    application.include_router(
        models.router, prefix="/models", tags=["models"]
    )

    return application


app = create_app()
