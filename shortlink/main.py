from fastapi import FastAPI
import uvicorn

from shortlink.links.router import router as links_router
from shortlink.redirect.router import router as redirect_router
from shortlink.auth.users import fastapi_users, auth_backend
from shortlink.auth.schemas import UserRead, UserCreate
from shortlink.links.background_tasks import lifespan
from shortlink.logger import get_logger
import shortlink.database.models  # noqa: F401

logger = get_logger("shortlink")

try:
    logger.info("Initializing FastAPI application")
    app = FastAPI(title="Shortlink", lifespan=lifespan)

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    logger.info("Including auth routers")
    app.include_router(
        fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"]
    )
    app.include_router(
        fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"]
    )

    logger.info("Including links and redirect routers")
    app.include_router(links_router)
    # the catch-all GET /{code} has to be registered last
    app.include_router(redirect_router)
    logger.info("Application initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize application: {e}")
    raise


if __name__ == "__main__":
    uvicorn.run("shortlink.main:app", host="0.0.0.0", port=8000)
