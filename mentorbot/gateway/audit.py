"""
Request audit log for the gateway: one JSON line per request.

Checkout callbacks also carry the order id and event so they line up with
the bot's [BOOKING] log lines. Health checks are not logged.
"""

import json
import logging
import re
import time
from typing import Optional

from fastapi import Request

logger = logging.getLogger(__name__)

PAYMENT_PATH_RE = re.compile(r"^/payments/(?P<order_id>[^/]+)/(?P<event>success|dismiss|failed)$")
QUIET_PATHS = {"/health"}


def audit_record(request: Request, status: int, started: float, duration_ms: int) -> Optional[dict]:
    path = request.url.path
    if path in QUIET_PATHS:
        return None

    record = {
        "ts": int(started),
        "method": request.method,
        "path": path,
        "status": status,
        "ip": request.headers.get("X-Real-IP") or (request.client.host if request.client else None),
        "duration_ms": duration_ms,
    }

    m = PAYMENT_PATH_RE.match(path)
    if m:
        record["order_id"] = m["order_id"]
        record["event"] = m["event"]
    elif path == "/tg/webhook":
        record["source"] = "telegram"
    return record


async def audit_middleware(request: Request, call_next):
    started = time.time()
    response = await call_next(request)
    duration_ms = int((time.time() - started) * 1000)

    record = audit_record(request, response.status_code, started, duration_ms)
    if record is not None:
        logger.info(json.dumps(record, ensure_ascii=False))
    return response
