from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from terminality import __version__
from terminality.config import settings


def create_app() -> FastAPI:
    app = FastAPI(title="Terminality", version=__version__)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    from terminality.api.systems import router as systems_router
    from terminality.api.terminal import router as terminal_router

    app.include_router(systems_router)
    app.include_router(terminal_router)

    @app.get("/")
    async def root():
        return {"status": "ok", "game": "Terminality"}

    return app


app = create_app()
