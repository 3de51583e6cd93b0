from fastapi import FastAPI
from .auth import router as auth_router
from .users import router as users_router
from .messages import router as messages_router
from .recent import router as recent_router
from .storage import router as storage_router

def setup_routes(app: FastAPI):
    @app.get("/")
    async def root():
        return {"message": "API is alive!"}

    # Include the router with a prefix
    app.include_router(
        auth_router,
        prefix="/auth",
        tags=["auth"],
    )

    app.include_router(
        users_router,
        prefix="/users",
        tags=["users"],
    )

    app.include_router(
        messages_router,
        prefix="/messages",
        tags=["messages"],
    )

    app.include_router(
        recent_router,
        prefix="/recent",
        tags=["recent"],
    )

    app.include_router(
        storage_router,
        prefix="/storage",
        tags=["storage"],
    )
