import os
import re
import sys
import json
import hashlib
import traceback
from datetime import datetime
from typing import Any, Dict, Optional
from sshdeploy.config import ANSI_ESCAPE, CACHE_DIR_NAME, EVENT_LOG_NAME, config

def log_error(message: str) -> None:
    print(f"[sshdeploy] {message}", file=sys.stderr, flush=True)

def log_warning(message: str) -> None:
    print(f"[sshdeploy] WARNING: {message}", file=sys.stderr, flush=True)

def log_debug(message: str) -> None:
    if not config.VERBOSE:
        return
    print(f"[sshdeploy] DEBUG: {message}", file=sys.stderr, flush=True)

def iso_now() -> str:
    return datetime.now().isoformat(timespec="milliseconds")

def safe_name(text: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]+", "_", text.strip())
    return cleaned[:80] if cleaned else "unnamed"

def strip_ansi(text: str) -> str:
    if not text:
        return ""
    return ANSI_ESCAPE.sub("", text)

def describe_exception(exc: BaseException) -> Dict[str, str]:
    return {
        "type": type(exc).__name__,
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip(),
    }

def json_line(path: str, payload: Dict[str, Any]) -> None:
    if not path:
        return
    try:
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except Exception as exc:
        log_error(f"log write failed ({path}): {exc}")

def log_event(event: str, **fields: Any) -> None:
    if not config.CACHE_ROOT:
        return
    payload = {"ts": iso_now(), "event": event}
    payload.update(fields)
    json_line(os.path.join(config.CACHE_ROOT, EVENT_LOG_NAME), payload)

def resolve_cache_root(source_root: str, cache_dir_arg: Optional[str]) -> str:
    # Lives outside the source tree so the event log never lands in an upload set.
    source_root = os.path.abspath(source_root)
    source_tag = safe_name(os.path.basename(source_root))
    source_hash = hashlib.sha1(source_root.encode("utf-8")).hexdigest()[:8]
    cache_override = cache_dir_arg or os.environ.get("SSHDEPLOY_CACHE_DIR")
    if cache_override:
        base = os.path.abspath(cache_override)
    else:
        base = os.path.join(os.path.expanduser("~"), CACHE_DIR_NAME)
    return os.path.join(base, f"{source_tag}-{source_hash}")

def make_cache_dir(cache_root: str) -> str:
    try:
        os.makedirs(cache_root, exist_ok=True)
    except OSError as exc:
        log_error(f"cache dir unavailable ({cache_root}): {exc}")
        return ""
    return cache_root
