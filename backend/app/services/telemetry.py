import time
import json
import logging
from typing import Optional
from functools import wraps

from fastapi import HTTPException

logger = logging.getLogger("lernwelt.telemetry")


def emit_event(event: str, *, route: Optional[str] = None, version: str = "v1",
               pipeline: Optional[str] = None, status_code: Optional[int] = None,
               error_type: Optional[str] = None, latency_ms: Optional[int] = None,
               ok: Optional[bool] = None, counts: Optional[dict] = None) -> dict:
    payload = {
        "event": event,
        "route": route,
        "version": version,
        "pipeline": pipeline,
        "status_code": status_code,
        "error_type": error_type,
        "latency_ms": latency_ms,
        "ok": ok,
        "counts": counts or {},
        "ts": time.time(),
    }
    # single-line JSON so log shippers can parse it
    logger.info("telemetry=%s", json.dumps(payload, separators=(",", ":")))
    return payload


def _elapsed_ms(started_at: float) -> int:
    return int((time.time() - started_at) * 1000)


def pipeline_run(pipeline: str, started_at: float, counts: dict, ok: bool = True) -> dict:
    """Report the outcome counters of one linking / validation / audit run."""
    return emit_event(
        "pipeline_run",
        pipeline=pipeline,
        latency_ms=_elapsed_ms(started_at),
        ok=ok,
        counts=counts,
    )


def instrument(route: str, version: str = "v1"):
    """Emit one api_call event per request to an async endpoint.

    HTTPExceptions are reported with their status code; 4xx still counts as ok
    since the service behaved as intended.
    """
    def deco(fn):
        @wraps(fn)
        async def wrapped(*args, **kwargs):
            t0 = time.time()
            status_code, err = 200, None
            try:
                return await fn(*args, **kwargs)
            except HTTPException as e:
                status_code, err = e.status_code, f"http_{e.status_code}"
                raise
            except Exception as e:
                status_code, err = 500, e.__class__.__name__
                raise
            finally:
                emit_event("api_call", route=route, version=version, status_code=status_code,
                           latency_ms=_elapsed_ms(t0), ok=status_code < 500, error_type=err)
        return wrapped
    return deco
