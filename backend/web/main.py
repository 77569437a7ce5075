"""artisync Web Backend - FastAPI Application."""

import os

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.web.core.config import DEFAULT_BACKEND_PORT
from backend.web.core.lifespan import lifespan
from backend.web.routers import conversations, errors, terminals, views
from sandbox.instance import SandboxFatalError

# Create FastAPI app
app = FastAPI(title="artisync Web Backend", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(conversations.router)
app.include_router(errors.router)
app.include_router(views.router)
app.include_router(terminals.router)


@app.exception_handler(SandboxFatalError)
async def sandbox_fatal_handler(request: Request, exc: SandboxFatalError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc), "kind": type(exc).__name__})


def _resolve_port() -> int:
    """Resolve backend port: ARTISYNC_BACKEND_PORT > PORT > default."""
    port = os.environ.get("ARTISYNC_BACKEND_PORT") or os.environ.get("PORT")
    if port:
        return int(port)
    return DEFAULT_BACKEND_PORT


def run() -> None:
    # @@@module-launch-target - package-qualified target keeps `python -m backend.web.main` and the console script import-safe
    uvicorn.run("backend.web.main:app", host="0.0.0.0", port=_resolve_port(), reload=os.environ.get("ARTISYNC_RELOAD") == "1")


if __name__ == "__main__":
    run()
