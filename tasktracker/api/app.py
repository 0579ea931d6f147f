"""
Task tracker HTTP server.

Serves the JSON API (accounts, sessions, owner-scoped tasks) and the small set of HTML pages
that sit behind the session gate.
"""

from __future__ import annotations

import html
import logging
import os
import time
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from tasktracker.auth.config import AuthConfig, load_auth_config
from tasktracker.auth.deps import authenticate_request, get_signer, require_identity
from tasktracker.auth.gate import LOGIN_PATH, PathClass, classify_path, evaluate
from tasktracker.auth.models import Identity
from tasktracker.auth.passwords import authenticate, hash_password, normalize_email
from tasktracker.auth.session import (
    SESSION_COOKIE_NAME,
    SessionSigner,
    clear_session_cookie_kwargs,
    session_cookie_kwargs,
)
from tasktracker.core.models import STATUS_FILTERS, Task, TaskStatus
from tasktracker.store.base import DuplicateEmailError, Store

logger = logging.getLogger(__name__)

SERVER_ERROR = "Server error"


class CredentialsRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TaskCreateRequest(BaseModel):
    title: Optional[str] = None


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    status: Optional[str] = None


def get_store(request: Request) -> Store:
    store = getattr(request.app.state, "store", None)
    if store is None:
        logger.error("Store is not configured (set DATABASE_URL or POSTGRES_* env vars)")
        raise HTTPException(status_code=500, detail=SERVER_ERROR)
    return store


def _session_response(cfg: AuthConfig, signer: SessionSigner, *, account_id: int, email: str, status_code: int):
    resp = JSONResponse(status_code=status_code, content={"accountId": account_id, "email": email})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, signer.issue_token(account_id, email)))
    return resp


def _parse_task_id(raw: str) -> int:
    try:
        task_id = int(raw)
    except (TypeError, ValueError):
        raise HTTPException(status_code=404, detail="Task not found")
    if task_id <= 0:
        raise HTTPException(status_code=404, detail="Task not found")
    return task_id


def _page(title: str, body: str) -> HTMLResponse:
    doc = (
        "<!doctype html><html><head><meta charset='utf-8'>"
        f"<title>{html.escape(title)} | Task Tracker</title></head><body>{body}</body></html>"
    )
    return HTMLResponse(content=doc)


def _auth_form(mode: str) -> str:
    action = "/auth/login" if mode == "login" else "/auth/register"
    heading = "Sign in" if mode == "login" else "Create account"
    other = (
        "<a href='/register'>Create an account</a>" if mode == "login" else "<a href='/login'>Already registered?</a>"
    )
    return (
        f"<h1>{heading}</h1>"
        f"<form data-action='{action}' method='post'>"
        "<input name='email' type='email' required> "
        "<input name='password' type='password' minlength='6' required> "
        f"<button type='submit'>{heading}</button></form><p>{other}</p>"
    )


def _filter_links(current: str) -> str:
    links = []
    for name in STATUS_FILTERS:
        label = html.escape(name.capitalize())
        if name == current:
            links.append(f"<strong>{label}</strong>")
        else:
            links.append(f"<a href='/dashboard?status={name}'>{label}</a>")
    return " ".join(links)


def _task_list(tasks: List[Task]) -> str:
    if not tasks:
        return "<p id='no-tasks'>No tasks yet.</p>"
    items = "".join(
        f"<li data-id='{t.id}' data-status='{html.escape(str(t.status))}'>{html.escape(t.title)}</li>" for t in tasks
    )
    return f"<ul id='tasks'>{items}</ul>"


def create_app(auth_cfg: Optional[AuthConfig] = None, store: Optional[Store] = None) -> FastAPI:
    """
    Build the application.

    The signing secret is resolved here, once per process; a missing AUTH_SESSION_SECRET raises
    AuthConfigError and the server never starts. When `store` is omitted a Postgres store is
    built from the environment at startup.
    """
    cfg = auth_cfg or load_auth_config()
    app = FastAPI(title="Task tracker")
    app.state.signer = SessionSigner(cfg)
    app.state.store = store

    @app.on_event("startup")
    def _startup_open_store() -> None:
        if app.state.store is not None:
            return
        from tasktracker.store.config import build_postgres_dsn, load_store_config
        from tasktracker.store.migrate import maybe_auto_migrate
        from tasktracker.store.postgres import PostgresStore

        store_cfg = load_store_config()
        result = maybe_auto_migrate(store_cfg)
        if not result.ok:
            logger.warning("DB schema setup failed, starting anyway: %s", result.message)
        elif result.attempted:
            logger.info("DB schema: %s", result.message)

        dsn = build_postgres_dsn(store_cfg)
        if not dsn:
            logger.warning("Postgres not configured; API routes that need the store will fail")
            return
        pg = PostgresStore.from_config(store_cfg, dsn)
        pg.open()
        app.state.store = pg
        app.state.owns_store = True
        logger.info(
            "Store opened: postgres_host=%s postgres_db=%s pool=%d..%d",
            store_cfg.postgres_host,
            store_cfg.postgres_db,
            store_cfg.pool_min_size,
            store_cfg.pool_max_size,
        )

    @app.on_event("shutdown")
    def _shutdown_close_store() -> None:
        if getattr(app.state, "owns_store", False) and app.state.store is not None:
            app.state.store.close()

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, _exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.middleware("http")
    async def gate_and_log_requests(request: Request, call_next):
        """Apply the session gate to page routes and log every request."""
        start_time = time.time()
        logger.debug("%s %s", request.method, request.url.path)
        try:
            path = request.url.path or "/"
            decision = evaluate(app.state.signer, path, request.cookies.get(SESSION_COOKIE_NAME))

            target = decision.outcome.redirect_to
            if target is not None:
                # Short-circuit: the page handler never runs on a redirect.
                response = RedirectResponse(url=target, status_code=302)
                response.headers["Cache-Control"] = "no-store"
                if decision.outcome.clears_cookie:
                    logger.info("Cleared invalid session cookie on %s", path)
                    response.set_cookie(**clear_session_cookie_kwargs(cfg))
                logger.debug("%s %s - %d -> %s", request.method, path, response.status_code, target)
                return response

            if decision.identity is not None:
                request.state.identity = decision.identity

            response = await call_next(request)
            process_time = time.time() - start_time
            logger.debug("%s %s - %d (%.3fs)", request.method, path, response.status_code, process_time)
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            path = request.url.path or "/"
            if classify_path(path) is PathClass.OTHER:
                return JSONResponse(status_code=500, content={"error": SERVER_ERROR})
            # Gated pages never show an error body. The cookie is dropped so a valid session cannot
            # bounce between /login and a failing /dashboard.
            response = RedirectResponse(url=LOGIN_PATH if path != LOGIN_PATH else "/", status_code=302)
            response.headers["Cache-Control"] = "no-store"
            response.set_cookie(**clear_session_cookie_kwargs(cfg))
            return response

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    # ---- pages ----

    @app.get("/", response_class=HTMLResponse)
    def home_page() -> HTMLResponse:
        links = "<a href='/login'>Login</a> <a href='/register'>Create Account</a>"
        return _page("Home", f"<h1>Task Tracker</h1><p>{links}</p>")

    @app.get("/login", response_class=HTMLResponse)
    def login_page() -> HTMLResponse:
        return _page("Login", _auth_form("login"))

    @app.get("/register", response_class=HTMLResponse)
    def register_page() -> HTMLResponse:
        return _page("Register", _auth_form("register"))

    @app.get("/dashboard", response_class=HTMLResponse)
    def dashboard_page(request: Request, status: str = Query("all")):
        identity: Optional[Identity] = getattr(request.state, "identity", None)
        if identity is None:
            return RedirectResponse(url="/login", status_code=302)
        status_filter = (status or "all").strip().lower()
        if status_filter not in STATUS_FILTERS:
            status_filter = "all"
        store = getattr(request.app.state, "store", None)
        if store is None:
            # The middleware turns this into a redirect.
            raise RuntimeError("Store is not configured")
        tasks = store.list_tasks(identity.account_id, None if status_filter == "all" else status_filter)
        body = (
            f"<h1>Your tasks</h1><p>Signed in as {html.escape(identity.email)}</p>"
            f"<nav>{_filter_links(status_filter)}</nav>"
            f"{_task_list(tasks)}"
            "<form data-action='/auth/logout' method='post'><button type='submit'>Logout</button></form>"
        )
        return _page("Dashboard", body)

    # ---- auth API ----

    @app.post("/auth/register")
    def auth_register(request: Request, body: CredentialsRequest) -> JSONResponse:
        email = normalize_email(body.email or "")
        password = body.password or ""
        if not email or not password:
            raise HTTPException(status_code=400, detail="Email and password required")
        if "@" not in email:
            raise HTTPException(status_code=400, detail="Invalid email")
        if len(password) < cfg.password_min_length:
            raise HTTPException(status_code=400, detail=f"Password must be {cfg.password_min_length}+ characters")

        store = get_store(request)
        try:
            account = store.create_account(email, hash_password(password, rounds=cfg.bcrypt_rounds))
        except DuplicateEmailError:
            raise HTTPException(status_code=409, detail="Email already registered")
        except Exception:
            logger.exception("Register error")
            raise HTTPException(status_code=500, detail=SERVER_ERROR)

        logger.info("Account created: id=%s", account.id)
        return _session_response(cfg, get_signer(request), account_id=account.id, email=account.email, status_code=201)

    @app.post("/auth/login")
    def auth_login(request: Request, body: CredentialsRequest) -> JSONResponse:
        email = normalize_email(body.email or "")
        password = body.password or ""
        if not email or not password:
            raise HTTPException(status_code=400, detail="Email and password required")

        store = get_store(request)
        try:
            account = authenticate(store, email, password)
        except Exception:
            logger.exception("Login error")
            raise HTTPException(status_code=500, detail=SERVER_ERROR)
        if account is None:
            raise HTTPException(status_code=401, detail="Invalid credentials")

        logger.info("Login: account id=%s", account.id)
        return _session_response(cfg, get_signer(request), account_id=account.id, email=account.email, status_code=200)

    @app.post("/auth/logout")
    def auth_logout(request: Request) -> JSONResponse:
        identity = authenticate_request(request)
        if identity is None:
            # Still drop whatever cookie the client sent; it cannot authenticate anything.
            resp = JSONResponse(status_code=401, content={"error": "Not authenticated"})
        else:
            logger.info("Logout: account id=%s", identity.account_id)
            resp = JSONResponse(content={"ok": True})
        resp.headers["Cache-Control"] = "no-store"
        resp.set_cookie(**clear_session_cookie_kwargs(cfg))
        return resp

    @app.get("/auth/me")
    def auth_me(identity: Identity = Depends(require_identity)) -> Dict[str, Any]:
        return {"accountId": identity.account_id, "email": identity.email}

    # ---- tasks API (owner-scoped) ----

    @app.get("/tasks")
    def list_tasks(
        request: Request,
        status: str = Query("all"),
        identity: Identity = Depends(require_identity),
    ) -> Dict[str, Any]:
        status_filter = (status or "all").strip().lower()
        if status_filter not in STATUS_FILTERS:
            raise HTTPException(status_code=400, detail="Invalid status filter")
        store = get_store(request)
        try:
            tasks = store.list_tasks(identity.account_id, None if status_filter == "all" else status_filter)
        except Exception:
            logger.exception("List tasks error")
            raise HTTPException(status_code=500, detail=SERVER_ERROR)
        return {"tasks": [t.to_json() for t in tasks]}

    @app.post("/tasks")
    def create_task(
        request: Request,
        body: TaskCreateRequest,
        identity: Identity = Depends(require_identity),
    ) -> JSONResponse:
        title = (body.title or "").strip()
        if not title:
            raise HTTPException(status_code=400, detail="Title required")
        store = get_store(request)
        try:
            task = store.create_task(identity.account_id, title)
        except Exception:
            logger.exception("Create task error")
            raise HTTPException(status_code=500, detail=SERVER_ERROR)
        return JSONResponse(status_code=201, content={"task": task.to_json()})

    @app.patch("/tasks/{task_id}")
    def update_task(
        request: Request,
        task_id: str,
        body: TaskUpdateRequest,
        identity: Identity = Depends(require_identity),
    ) -> Dict[str, Any]:
        tid = _parse_task_id(task_id)
        if body.title is None and body.status is None:
            raise HTTPException(status_code=400, detail="Nothing to update")

        title: Optional[str] = None
        if body.title is not None:
            title = body.title.strip()
            if not title:
                raise HTTPException(status_code=400, detail="Title required")
        status: Optional[str] = None
        if body.status is not None:
            status = body.status.strip().lower()
            if status not in (TaskStatus.PENDING.value, TaskStatus.COMPLETED.value):
                raise HTTPException(status_code=400, detail="Invalid status")

        store = get_store(request)
        try:
            task = store.update_task(identity.account_id, tid, title=title, status=status)
        except Exception:
            logger.exception("Update task error")
            raise HTTPException(status_code=500, detail=SERVER_ERROR)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return {"task": task.to_json()}

    @app.delete("/tasks/{task_id}")
    def delete_task(
        request: Request,
        task_id: str,
        identity: Identity = Depends(require_identity),
    ) -> Dict[str, Any]:
        tid = _parse_task_id(task_id)
        store = get_store(request)
        try:
            deleted = store.delete_task(identity.account_id, tid)
        except Exception:
            logger.exception("Delete task error")
            raise HTTPException(status_code=500, detail=SERVER_ERROR)
        if not deleted:
            raise HTTPException(status_code=404, detail="Task not found")
        return {"ok": True}

    return app


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    # Resolve config before binding the socket so a missing secret fails fast.
    app = create_app()
    logger.info("Starting task tracker on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
