import argparse
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

import psycopg2
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .auth.config import AuthConfig, load_auth_config
from .auth.rbac import current_actor_role, require_roles
from .config import MonitorConfig, load_db_config, load_monitor_config
from .core.classifier import RequestEnvironment, classify_request
from .core.dedup import DedupGuard, build_dedup_store, mint_nonce
from .core.extractor import Transport
from .core.models import BeaconAck, BeaconStatus, RequestKind
from .core.pipeline import REASON_EXCLUDED, REASON_MISSING_TOKEN, TrafficLogger
from .services.export_service import export_filename, rows_to_csv
from .services.log_service import DEFAULT_PER_PAGE, LogStore, PostgresLogSink

logger = logging.getLogger(__name__)

BULK_ACTIONS = ("delete", "delete_all", "export", "export_all")


# Pydantic models
class RequestLogRow(BaseModel):
    id: int
    captured_at: datetime
    origin_kind: str
    target_path: str = ""
    http_method: str = ""
    referrer: str = ""
    actor_role: str = ""
    client_ip: str = ""
    host: str = ""
    device_class: str = ""
    platform: str = ""
    browser: str = ""
    browser_version: str = ""
    raw_user_agent: str = ""
    origin_header: str = ""
    accept_encoding: str = ""
    accept_language: str = ""
    accept: Optional[str] = None
    content_type: Optional[str] = None
    connection: Optional[str] = None
    cache_control: Optional[str] = None
    status_code: Optional[int] = None


class LogPage(BaseModel):
    items: List[RequestLogRow]
    total_count: int
    page: int
    per_page: int
    total_pages: int


class BulkActionRequest(BaseModel):
    bulk_action: str = ""
    ids: List[int] = []


class BulkActionResponse(BaseModel):
    message: str
    count: Optional[int] = None


class BeaconResponse(BaseModel):
    status: str
    message: str
    reason: Optional[str] = None


def _matches_prefix(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def environment_from_request(request: Request, config: MonitorConfig) -> RequestEnvironment:
    """Translate an incoming HTTP request into classification signals."""
    path = request.url.path
    return RequestEnvironment(
        path=path,
        method=request.method,
        is_admin=_matches_prefix(path, config.admin_prefix),
        is_beacon=path == config.beacon_path,
        is_rest=any(_matches_prefix(path, prefix) for prefix in config.rest_prefixes),
        is_cron=any(_matches_prefix(path, cron_path) for cron_path in config.cron_paths),
        is_websocket=request.headers.get("upgrade", "").lower() == "websocket",
    )


def transport_from_request(
    request: Request,
    status_code: Optional[int] = None,
    form: Optional[dict[str, str]] = None,
) -> Transport:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return Transport(
        method=request.method,
        path=path,
        remote_addr=request.client.host if request.client else "",
        headers={name: ", ".join(request.headers.getlist(name)) for name in request.headers.keys()},
        form=form or {},
        status_code=status_code,
    )


def traffic_nonce(request: Request) -> str:
    """Nonce of the page view being rendered, for embedding in the page's beacon script."""
    return getattr(request.state, "traffic_nonce", "")


def install_traffic_monitor(
    app: FastAPI,
    config: MonitorConfig,
    traffic_logger: TrafficLogger,
    auth_config: AuthConfig,
) -> None:
    """Classify every request once and log direct page views after they are served.

    The nonce minted for a page view is sent back in the response header
    named by ``config.nonce_header`` and is also left on
    ``request.state.traffic_nonce``. Script running in the page cannot read
    the headers of its own navigation response, so templates that emit the
    beacon script must embed the value themselves; ``traffic_nonce`` reads it.
    """

    @app.middleware("http")
    async def traffic_monitor_middleware(request: Request, call_next):
        environment = environment_from_request(request, config)
        kind = classify_request(environment)
        request.state.environment = environment
        request.state.request_kind = kind

        if kind is not RequestKind.DIRECT:
            return await call_next(request)

        nonce = mint_nonce()
        request.state.traffic_nonce = nonce
        response = await call_next(request)

        transport = transport_from_request(request, status_code=response.status_code)
        await run_in_threadpool(
            traffic_logger.handle_inbound_request,
            environment,
            transport,
            kind=kind,
            nonce=nonce,
            actor_role=current_actor_role(request, auth_config),
        )
        response.headers[config.nonce_header] = nonce
        return response


def build_beacon_route(
    config: MonitorConfig,
    traffic_logger: TrafficLogger,
    auth_config: AuthConfig,
) -> APIRouter:
    router = APIRouter()

    @router.post(config.beacon_path, response_model=BeaconResponse)
    async def receive_beacon(request: Request):
        """Log a page view reported by the page itself."""
        form = await request.form()
        fields = {name: value for name, value in form.items() if isinstance(value, str)}

        environment = getattr(request.state, "environment", None) or environment_from_request(request, config)
        kind = getattr(request.state, "request_kind", None)
        ack = await run_in_threadpool(
            traffic_logger.handle_inbound_request,
            environment,
            transport_from_request(request, form=fields),
            kind=kind,
            actor_role=current_actor_role(request, auth_config),
        )
        if ack is None:
            ack = BeaconAck(BeaconStatus.REJECTED, "Request path is not logged.", REASON_EXCLUDED)

        status_code = status.HTTP_400_BAD_REQUEST if ack.reason == REASON_MISSING_TOKEN else status.HTTP_200_OK
        return JSONResponse(
            status_code=status_code,
            content={"status": ack.status.value, "message": ack.message, "reason": ack.reason},
        )

    return router


def _with_database(call: Callable[..., Any], *args: Any) -> Any:
    try:
        return call(*args)
    except psycopg2.OperationalError as e:
        raise HTTPException(status_code=503, detail=f"Database connection failed: {str(e)}")


def build_admin_router(config: MonitorConfig, sink: LogStore, auth_config: AuthConfig) -> APIRouter:
    """Admin views over the request log, restricted to the admin role."""
    router = APIRouter(
        prefix=config.admin_prefix,
        dependencies=[Depends(require_roles([auth_config.admin_role], auth_config))],
    )

    @router.get("/logs", response_model=LogPage)
    def list_logs(
        search: Optional[str] = Query(None, description="Case-insensitive substring to match"),
        orderby: Optional[str] = Query(None, description="Sort column"),
        order: Optional[str] = Query(None, description="asc or desc"),
        page: int = Query(1, ge=1),
        per_page: int = Query(DEFAULT_PER_PAGE, ge=1),
    ):
        return _with_database(sink.query, search, orderby, order, page, per_page)

    @router.get("/logs/{log_id}", response_model=RequestLogRow)
    def get_log(log_id: int):
        row = _with_database(sink.get, log_id)
        if not row:
            raise HTTPException(status_code=404, detail="Request record not found")
        return row

    @router.post("/logs/bulk", response_model=BulkActionResponse)
    def bulk_action(body: BulkActionRequest):
        action = body.bulk_action.strip()
        if action not in BULK_ACTIONS:
            raise HTTPException(status_code=400, detail="Please select a bulk action before clicking Apply.")
        if action in ("delete", "export") and not body.ids:
            raise HTTPException(status_code=400, detail=f"Please select the records you want to {action}.")

        if action == "delete":
            deleted = _with_database(sink.delete, body.ids)
            return {"message": f"Total records deleted: {deleted}", "count": deleted}
        if action == "delete_all":
            _with_database(sink.delete_all)
            return {"message": "All records deleted successfully."}

        if action == "export":
            rows = _with_database(sink.get_selected, body.ids)
        else:
            rows = _with_database(sink.get_all)
        if not rows:
            raise HTTPException(status_code=400, detail="No matching records found.")

        file_name = export_filename()
        logger.info("Exporting request records", extra={"count": len(rows), "file_name": file_name})
        return Response(
            content=rows_to_csv(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
        )

    return router


def create_app(
    config: Optional[MonitorConfig] = None,
    sink: Optional[LogStore] = None,
    guard: Optional[DedupGuard] = None,
    auth_config: Optional[AuthConfig] = None,
) -> FastAPI:
    config = config or load_monitor_config()
    auth_config = auth_config or load_auth_config()
    sink = sink if sink is not None else PostgresLogSink(load_db_config())
    if guard is None:
        guard = DedupGuard(
            build_dedup_store(config.dedup_backend, config.redis_url),
            ttl_seconds=config.dedup_ttl_seconds,
        )
    traffic_logger = TrafficLogger(
        sink,
        guard,
        rest_prefixes=config.rest_prefixes,
        local_hosts=config.local_hosts,
    )

    app = FastAPI(
        title="Traffic Monitor",
        description="Logs page views served directly or reported by cached pages",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(auth_config.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[config.nonce_header],
    )
    install_traffic_monitor(app, config, traffic_logger, auth_config)

    @app.get("/")
    def read_root():
        """Root endpoint."""
        return {
            "message": "Traffic Monitor",
            "version": "1.0.0",
            "endpoints": {
                "beacon": config.beacon_path,
                "logs": f"{config.admin_prefix}/logs",
                "log_by_id": f"{config.admin_prefix}/logs/{{id}}",
                "bulk": f"{config.admin_prefix}/logs/bulk",
                "health": "/health",
            },
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        try:
            sink.count_all()
            return {"status": "healthy", "database": "connected"}
        except psycopg2.Error as e:
            return {"status": "unhealthy", "error": str(e)}

    app.include_router(build_beacon_route(config, traffic_logger, auth_config))
    app.include_router(build_admin_router(config, sink, auth_config))
    return app


app = create_app()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Traffic Monitor server")
    parser.add_argument("--init-db", action="store_true", help="Create the request_log table and exit")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    monitor_config = load_monitor_config()
    logging.basicConfig(
        level=monitor_config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.init_db:
        PostgresLogSink(load_db_config()).create_tables()
        return

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
