import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from reviewer.backends import InferenceBackend
from reviewer.config import Settings
from reviewer.constants import WARMUP_PROMPT
from reviewer.errors import BackendError, ReviewError

STARTED_AT = time.monotonic()


async def check_health(settings: Settings, backend: InferenceBackend) -> Tuple[int, Dict[str, Any]]:
    """Probe the backend once and return (http status, body)."""
    backend_status: Dict[str, Any] = {
        "url": backend.url,
        "model": backend.model,
        "provider": backend.provider,
        "status": "unknown",
    }

    try:
        models = await asyncio.wait_for(backend.list_models(), timeout=settings.HEALTH_TIMEOUT)
        backend_status["status"] = "connected"
        backend_status["availableModels"] = models
        backend_status["modelExists"] = backend.model in models
    except BackendError as e:
        backend_status["status"] = "disconnected" if e.status is None else "error"
        backend_status["error"] = e.details
    except (asyncio.TimeoutError, TimeoutError):
        backend_status["status"] = "disconnected"
        backend_status["error"] = f"No answer within {settings.HEALTH_TIMEOUT:g}s"
    except Exception as e:
        logging.error(f"Health probe failed: {e}")
        backend_status["status"] = "disconnected"
        backend_status["error"] = str(e)

    connected = backend_status["status"] == "connected"
    health = {
        "status": "ok" if connected else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "config": {
            "timeout": f"{settings.timeout_seconds:g}s",
            "maxFileSize": f"{settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
            "provider": backend.provider,
        },
        "ollama": backend_status,
    }
    return (200 if connected else 503), health


async def check_backend_on_startup(settings: Settings, backend: InferenceBackend) -> bool:
    """Log backend reachability and, if enabled, time a tiny test prompt."""
    logging.info(f"Testing {backend.name} connection at {backend.url}...")
    try:
        models = await asyncio.wait_for(backend.list_models(), timeout=settings.HEALTH_TIMEOUT)
    except (asyncio.TimeoutError, TimeoutError):
        logging.error(f"{backend.name} connection failed: no answer within {settings.HEALTH_TIMEOUT:g}s")
        return False
    except Exception as e:
        logging.error(f"{backend.name} connection failed: {e}")
        return False

    logging.info(f"{backend.name} connected successfully. Available models: {models}")
    if backend.model not in models:
        logging.warning(f"Model '{backend.model}' not found. Available: {', '.join(models)}")
        return True

    logging.info(f"Model '{backend.model}' is available")
    if settings.WARMUP_ON_STARTUP:
        start = time.monotonic()
        try:
            reply = await backend.generate(WARMUP_PROMPT, timeout=settings.timeout_seconds)
        except ReviewError as e:
            logging.warning(f"Model test failed: {e}")
        else:
            logging.info(f"Model test successful ({int((time.monotonic() - start) * 1000)}ms): {reply.strip()!r}")
    return True
