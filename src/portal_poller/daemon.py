"""Persistent daemon for the poll engine.

Runs as a local HTTP server so a dashboard host can register poll jobs, read
their latest payloads and report whether the dashboard is visible.
"""
import argparse
import logging
import time

from aiohttp import web

from . import config, debug
from .api import PortalClient
from .poll.engine import PollEngine
from .poll.policy import PolicyError, PollPolicy, policy_from_args
from .presets import PRESETS, get_preset
from .visibility import get_signal

log = logging.getLogger(__name__)

DAEMON_HOST = config.DAEMON_HOST
DAEMON_PORT = config.DAEMON_PORT


async def _parse_body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        raw = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(text='{"error": "Body must be JSON"}', content_type="application/json")
    return raw if isinstance(raw, dict) else {}


def _engine(request: web.Request) -> PollEngine:
    return request.app["engine"]


def _not_found(poll_id) -> web.Response:
    return web.json_response({"error": f"Poll job {poll_id} not found"}, status=404)


# ─── HTTP handlers ──────────────────────────────────────────────

async def handle_poll_start(request: web.Request) -> web.Response:
    args = await _parse_body(request)
    preset = None
    if args.get("preset"):
        if not isinstance(args["preset"], str):
            return web.json_response({"error": "preset must be a string"}, status=400)
        try:
            preset = get_preset(args["preset"])
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

    path = args.get("path") or (preset.path if preset else None)
    if not path:
        return web.json_response({"error": "Either path or preset is required"}, status=400)

    params = args.get("params")
    if params is None:
        params = preset.params if preset else {}
    if not isinstance(params, dict):
        return web.json_response({"error": "params must be an object"}, status=400)

    base = PollPolicy(initial_interval_ms=preset.initial_interval_ms) if preset else PollPolicy()
    try:
        policy = policy_from_args(args, base=base)
    except PolicyError as e:
        return web.json_response({"error": str(e)}, status=400)

    name = args.get("name") or (preset.name if preset else path)
    job = _engine(request).create_job(name, path, params=params, policy=policy)
    return web.json_response(job.describe())


async def handle_poll_status(request: web.Request) -> web.Response:
    args = await _parse_body(request)
    engine = _engine(request)
    poll_id = args.get("poll_id")
    if poll_id:
        job = engine.get_job(poll_id)
        if job is None:
            return _not_found(poll_id)
        return web.json_response(job.describe())

    jobs = [job.describe() for job in engine.jobs.values()]
    return web.json_response({"active_jobs": jobs, "count": len(jobs), "visible": engine.visibility.visible})


async def handle_poll_refresh(request: web.Request) -> web.Response:
    args = await _parse_body(request)
    poll_id = args.get("poll_id")
    job = _engine(request).refresh_job(poll_id)
    if job is None:
        return _not_found(poll_id)
    return web.json_response(job.describe())


async def handle_poll_data(request: web.Request) -> web.Response:
    args = await _parse_body(request)
    poll_id = args.get("poll_id")
    job = _engine(request).get_job(poll_id)
    if job is None:
        return _not_found(poll_id)
    return web.json_response({
        "poll_id": job.id,
        "fetch_count": job.fetch_count,
        "last_success_at": job.last_success_at,
        "last_error": job.last_error,
        "data": job.last_payload,
    })


async def handle_poll_cancel(request: web.Request) -> web.Response:
    args = await _parse_body(request)
    poll_id = args.get("poll_id")
    job = _engine(request).cancel_job(poll_id)
    if job is None:
        return _not_found(poll_id)
    return web.json_response({"poll_id": job.id, "status": job.status})


async def handle_visibility(request: web.Request) -> web.Response:
    args = await _parse_body(request)
    if not isinstance(args.get("visible"), bool):
        return web.json_response({"error": "visible must be true or false"}, status=400)
    signal = _engine(request).visibility
    signal.set_visible(args["visible"])
    return web.json_response({"visible": signal.visible, "listeners": signal.listener_count})


async def handle_presets(request: web.Request) -> web.Response:
    return web.json_response({
        name: {"path": p.path, "initial_interval_ms": p.initial_interval_ms, "params": p.params, "description": p.description}
        for name, p in PRESETS.items()
    })


async def handle_health(request: web.Request) -> web.Response:
    engine = _engine(request)
    # Custom fetchers have no portal client to probe
    api = await engine.client.check_health() if engine.client else None
    return web.json_response({
        "ok": True,
        "api": api,
        "visible": engine.visibility.visible,
        "jobs": len(engine.jobs),
        "api_base_url": engine.client.base_url if engine.client else config.API_BASE_URL,
    })


# ─── App setup ──────────────────────────────────────────────────

@web.middleware
async def debug_middleware(request: web.Request, handler):
    """Log all HTTP requests when debug is enabled."""
    start = time.time()
    try:
        response = await handler(request)
        elapsed = (time.time() - start) * 1000
        debug.log_http(request.method, request.path, response.status, elapsed)
        return response
    except web.HTTPException as e:
        elapsed = (time.time() - start) * 1000
        debug.log_http(request.method, request.path, e.status, elapsed)
        raise
    except Exception:
        elapsed = (time.time() - start) * 1000
        debug.log_http(request.method, request.path, 500, elapsed)
        raise


def create_app(engine: PollEngine = None, presets: list[str] = ()) -> web.Application:
    app = web.Application(middlewares=[debug_middleware])
    app["engine"] = engine or PollEngine(client=PortalClient(), visibility=get_signal())
    app["presets"] = list(presets)

    async def on_startup(app):
        for name in app["presets"]:
            preset = get_preset(name)
            app["engine"].create_job(
                preset.name,
                preset.path,
                params=preset.params,
                policy=PollPolicy(initial_interval_ms=preset.initial_interval_ms),
            )

    async def on_cleanup(app):
        await app["engine"].close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    app.router.add_post("/poll_start", handle_poll_start)
    app.router.add_post("/poll_status", handle_poll_status)
    app.router.add_post("/poll_refresh", handle_poll_refresh)
    app.router.add_post("/poll_data", handle_poll_data)
    app.router.add_post("/poll_cancel", handle_poll_cancel)
    app.router.add_post("/visibility", handle_visibility)
    app.router.add_get("/presets", handle_presets)
    app.router.add_get("/health", handle_health)
    return app


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="portal-poller-daemon", description="Adaptive poller for the property portal API")
    p.add_argument("--debug", action="store_true", help="Enable colored debug logging")
    p.add_argument("--host", default=DAEMON_HOST)
    p.add_argument("--port", type=int, default=DAEMON_PORT)
    p.add_argument(
        "--preset",
        action="append",
        default=[],
        choices=sorted(PRESETS),
        help="Start polling a preset resource at startup (repeatable)",
    )
    return p


def main(argv: list[str] | None = None):
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    config.ensure_data_dir()
    debug.init(enabled=args.debug or config.DEBUG)
    debug.log("DAEMON", f"Starting portal-poller daemon on {args.host}:{args.port}")
    debug.log("DAEMON", f"API: {config.API_BASE_URL}, presets: {', '.join(args.preset) or '<none>'}")
    debug.log("DAEMON", f"Data dir: {config.DATA_DIR}")
    log.info(f"Starting portal-poller daemon on {args.host}:{args.port}")
    app = create_app(presets=args.preset)
    try:
        web.run_app(app, host=args.host, port=args.port, print=lambda msg: log.info(msg))
    finally:
        debug.close()


if __name__ == "__main__":
    main()
