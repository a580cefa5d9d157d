from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from bulkio.core.config import settings
from bulkio.core.logging_config import setup_logging
from bulkio.api import imports, exports, scheduled_exports, templates, modules, health
from bulkio.api.errors import register_exception_handlers

setup_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(health.router, prefix=settings.API_V1_PREFIX, tags=["health"])
app.include_router(modules.router, prefix=settings.API_V1_PREFIX, tags=["modules"])
app.include_router(imports.router, prefix=settings.API_V1_PREFIX, tags=["imports"])
app.include_router(exports.router, prefix=settings.API_V1_PREFIX, tags=["exports"])
app.include_router(scheduled_exports.router, prefix=settings.API_V1_PREFIX, tags=["scheduled-exports"])
app.include_router(templates.router, prefix=settings.API_V1_PREFIX, tags=["templates"])

if settings.SCHEDULED_EXPORTS_ENABLED:
    from bulkio.scheduler import init_scheduler
    init_scheduler(app)


@app.get("/")
async def root():
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }
