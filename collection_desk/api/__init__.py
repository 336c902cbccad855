"""
Collection Desk API Application Factory
"""

from fastapi import FastAPI
import uvicorn
from fastapi.middleware.cors import CORSMiddleware

from .collections import router as collections_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Collection Desk API",
        description="Collection verification, cheque conversion and receivables reporting",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(collections_router, prefix="/collections", tags=["Collections"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "collection_desk_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Collection Desk API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "collections": "/collections",
            }
        }

    return app


# Create the app instance for uvicorn
app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "collection_desk.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
