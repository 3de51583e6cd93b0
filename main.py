# main.py
from fastapi import FastAPI
import uvicorn

from logger.logger import logger

# Try to import config - if any required configs are missing,
# the app will exit before starting
try:
    import config
except Exception as e:
    logger.critical(f"Failed to load configuration: {e}")
    import sys
    sys.exit(1)

from db.db import init_db, close_db_connection, init_object_storage
from routes.routes import setup_routes
from services.change_feed import get_change_feed


# Initialize FastAPI app
app = FastAPI(title="Chat Messaging API")

# Setup routes
setup_routes(app)

# Startup and shutdown events
@app.on_event("startup")
async def startup_db_client():
    logger.info("Starting up application")
    await init_db()
    await init_object_storage()
    feed = get_change_feed()
    logger.info(f"Change feed ready (queue size {feed.queue_size})")

@app.on_event("shutdown")
async def shutdown_db_client():
    logger.info("Shutting down application")
    get_change_feed().close_all()
    await close_db_connection()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
