"""VPS Template - FastAPI Gateway

API endpoints:
  /        - Welcome page (HTML, version from IMAGE_TAG)
  /health  - Health check (status, version, current UTC time)

Each handler opens one span (no-op when tracing is off) and emits exactly
one log record.
"""
import html
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from vps_template.core.context import AppContext

router = APIRouter()

WELCOME_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>VPS Template</title>
    <style>
        body {
            font-family: Arial, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            color: white;
        }
        .container {
            text-align: center;
            padding: 2rem;
            background: rgba(255, 255, 255, 0.1);
            border-radius: 10px;
            backdrop-filter: blur(10px);
        }
        h1 { margin-bottom: 1rem; font-size: 2.5rem; }
        p { font-size: 1.2rem; margin: 0.5rem 0; }
        .version { font-size: 0.9rem; opacity: 0.8; margin-top: 1rem; }
        .links { margin-top: 2rem; }
        .links a {
            color: #fff;
            text-decoration: none;
            margin: 0 1rem;
            padding: 0.5rem 1rem;
            border: 1px solid rgba(255,255,255,0.3);
            border-radius: 5px;
            transition: background-color 0.3s;
        }
        .links a:hover { background-color: rgba(255,255,255,0.2); }
    </style>
</head>
<body>
    <div class="container">
        <h1>&#128640; VPS Template</h1>
        <p>Welcome to your Python application!</p>
        <p>This app demonstrates structured logging, tracing, and graceful shutdown.</p>
        <div class="version">Version: {version}</div>
        <div class="links">
            <a href="/health">Health Check</a>
        </div>
    </div>
</body>
</html>"""


def render_welcome(version: str) -> str:
    # str.replace, not str.format: the stylesheet is full of braces
    return WELCOME_PAGE.replace("{version}", html.escape(version))


def health_status(version: str, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    return {
        "status": "healthy",
        "version": version,
        "time": now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


def _remote_addr(request: Request) -> str:
    if request.client is None:
        return ""
    return f"{request.client.host}:{request.client.port}"


@router.get("/", response_class=HTMLResponse)
def handle_root(request: Request):
    ctx: AppContext = request.app.state.ctx
    with ctx.tracing.start_span("handle_root", request.headers, **{"http.method": request.method}):
        ctx.log.info(
            "root_accessed",
            method=request.method,
            path=request.url.path,
            remote_addr=_remote_addr(request),
            user_agent=request.headers.get("user-agent", ""),
        )
        # Explicit header keeps Starlette from appending "; charset=utf-8"
        return HTMLResponse(render_welcome(ctx.config.image_tag), headers={"content-type": "text/html"})


@router.get("/health")
def handle_health(request: Request):
    ctx: AppContext = request.app.state.ctx
    with ctx.tracing.start_span("handle_health", request.headers, **{"http.method": request.method}):
        ctx.log.info("health_checked")
        return JSONResponse(health_status(ctx.config.image_tag))


def create_app(ctx: AppContext) -> FastAPI:
    app = FastAPI(title="VPS Template", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.ctx = ctx
    app.include_router(router)
    return app
