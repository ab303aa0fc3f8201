"""
Main entrypoint for the FastAPI server
"""

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from sqlalchemy.exc import SQLAlchemyError
from core.config import get_settings
from core.errors import register_exception_handlers
from core.lifespan import lifespan
from core.logger import logger

from api.auth.routes import router as auth_router
from api.uploads.middleware import UploadBodyLimitMiddleware
from api.uploads.routes import router as uploads_router
from api.users.routes import router as users_router


# Customize route id's
# Helpful for creating sensible names in the client
def custom_generate_unique_id(route: APIRoute):
    """ Generate unique route IDs based on route name """
    return f"{route.name}"  # these must be unique


settings = get_settings()

# Create schema & router
app = FastAPI(
    title=settings.APP_NAME,
    lifespan=lifespan,
    generate_unique_id_function=custom_generate_unique_id
)

register_exception_handlers(app)

API_PREFIX = settings.API_PREFIX

# Must sit inside CORS: its early rejections need CORS headers too
app.add_middleware(
    UploadBodyLimitMiddleware,
    path=f"{API_PREFIX}/upload",
    max_file_size=settings.UPLOAD_MAX_FILE_SIZE,
    max_files=settings.UPLOAD_MAX_FILES,
)

# CORS settings to allow client-server communication
# Set with env variable
origins = [settings.client_origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# REST routers
# Add each api/feature folder here
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(uploads_router, prefix=API_PREFIX)


# Health check endpoint for monitoring
@app.get("/health", tags=["health"])
def health_check():
    return {
        "success": True,
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.ENVIRONMENT,
    }


@app.get("/api/health", tags=["health"])
def api_health_check(request: Request):
    """Health check that also verifies the database connection"""
    try:
        logger.debug("Checking database connection")
        request.app.state.db.ping()
        return {"status": "ok", "message": f"{settings.APP_NAME} API is running"}
    except SQLAlchemyError as e:
        logger.error("Checking database connection...FAILED: %s", e)
        return {"status": "error", "message": "Database unavailable"}


if __name__ == "__main__":
    # For debugging purposes
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
