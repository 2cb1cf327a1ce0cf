import time

import redis
from flask import current_app
from sqlalchemy import text

from subsync.extensions import db


def _check_database():
    start = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        latency = round((time.time() - start) * 1000, 2)
        return {"status": "ok", "latency_ms": latency}
    except Exception as e:
        db.session.rollback()
        return {"status": "error", "error": str(e)}


def _broker_url():
    url = current_app.config.get("CELERY", {}).get("broker_url")
    if not url or not url.startswith(("redis://", "rediss://")):
        return None
    return url


def _check_broker():
    url = _broker_url()
    if not url:
        return {"status": "skipped", "reason": "broker is not redis"}

    start = time.time()
    try:
        client = redis.from_url(url, socket_connect_timeout=2, socket_timeout=2)
        client.ping()
        latency = round((time.time() - start) * 1000, 2)
        return {"status": "ok", "latency_ms": latency}
    except Exception as e:
        return {"status": "error", "error": str(e)}


def _check_queue():
    """
    Depth of the Celery queue side effects are published to.
    """
    url = _broker_url()
    if not url:
        return {"status": "skipped", "reason": "broker is not redis"}

    try:
        r = redis.from_url(url, socket_connect_timeout=2, socket_timeout=2)
        return {"status": "ok", "queues": {"celery": r.llen("celery")}}
    except Exception as e:
        return {"status": "error", "error": str(e)}


def _check_webhook_config():
    if not current_app.config.get("PADDLE_WEBHOOK_SECRET"):
        return {"status": "error", "error": "PADDLE_WEBHOOK_SECRET not set"}
    return {"status": "ok"}


def run_health_checks():
    """
    Master health runner used by route.
    """
    started = time.time()

    checks = {
        "database": _check_database(),
        "broker": _check_broker(),
        "queue": _check_queue(),
        "webhook_config": _check_webhook_config(),
    }

    overall = "ok"

    for c in checks.values():
        if c["status"] == "error":
            overall = "degraded"

    return {
        "status": overall,
        "timestamp": int(time.time()),
        "checks": checks,
        "duration_ms": round((time.time() - started) * 1000, 2),
        "environment": current_app.config.get("ENV", "unknown"),
    }
