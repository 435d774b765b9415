from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
import yaml
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from watcher.errors import (
    CompileError,
    ResourceUnavailableError,
    TemplateNotFoundError,
)
from watcher.registry import TemplateRegistry
from watcher.runtime import CompileRuntime

BASE_DIR = Path(__file__).parent


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    # Startup
    settings = load_settings()
    template_settings = settings.get("templates", {})

    base_path = Path(template_settings.get("base_path", "templates"))
    if not base_path.is_absolute():
        base_path = BASE_DIR / base_path

    registry = TemplateRegistry(
        base_path, marker=template_settings.get("marker", "mtime")
    )
    runtime = CompileRuntime(
        max_workers=settings.get("runtime", {}).get("thread_pool_workers", 2)
    )

    # Store in app.state for access in handlers
    app.state.registry = registry
    app.state.runtime = runtime
    app.state.settings = settings

    yield

    # Shutdown
    runtime.shutdown()


app = FastAPI(title="Template Watch", lifespan=lifespan)


class TemplateStatus(BaseModel):
    name: str
    identity: str
    available: bool
    compiled: bool
    stale: bool
    marker: int | float | str | None
    compile_count: int


@app.get("/api/templates")
async def list_templates(request: Request):
    """Return the names of the templates under the base directory."""
    registry = request.app.state.registry
    return {"templates": registry.names()}


@app.get("/api/templates/{name}")
async def get_template(request: Request, name: str):
    """
    Return the compiled template tree, recompiling if the file changed.

    Raises:
        HTTPException: 404 if the template is missing, 422 if it does not compile
    """
    registry = request.app.state.registry
    runtime = request.app.state.runtime
    try:
        template = await runtime.run(registry.get, name)
    except (TemplateNotFoundError, ResourceUnavailableError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except CompileError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return template.to_dict()


@app.get("/api/templates/{name}/status", response_model=TemplateStatus)
async def get_template_status(request: Request, name: str):
    """Report the cache state of a template without compiling it."""
    registry = request.app.state.registry
    runtime = request.app.state.runtime
    try:
        cache = await runtime.run(registry.find, name)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    if cache is None:
        # Missing files are reported without being watched
        return TemplateStatus(
            name=name,
            identity=str(registry.resolve(name)),
            available=False,
            compiled=False,
            stale=True,
            marker=None,
            compile_count=0,
        )

    try:
        stale = await runtime.run(cache.is_stale)
        available = True
    except ResourceUnavailableError:
        stale, available = True, False

    return TemplateStatus(
        name=name,
        identity=cache.resource.identity,
        available=available,
        compiled=cache.last_good() is not None,
        stale=stale,
        marker=cache.marker,
        compile_count=cache.compile_count,
    )


def load_settings():
    """Load settings from config/settings.yaml."""
    settings_path = BASE_DIR / "config" / "settings.yaml"
    with open(settings_path) as f:
        return yaml.safe_load(f)


if __name__ == "__main__":
    settings = load_settings()
    uvicorn.run(
        app,
        host=settings["server"]["host"],
        port=settings["server"]["port"],
    )
