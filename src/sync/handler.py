from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError

from ttrss.client import TTRSSClient


logger = logging.getLogger(__name__)

ENV_URL = "TTRSS_URL"
ENV_USER = "TTRSS_USER"
ENV_PASSWORD = "TTRSS_PASSWORD"  # optional when PARAM_PREFIX provides it
ENV_TIMEOUT = "TTRSS_TIMEOUT"
ENV_PARAM_PREFIX = "PARAM_PREFIX"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                out[name] = None
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def _resolve_password() -> str:
    password = _getenv(ENV_PASSWORD)
    if password:
        return password
    prefix = _require(_getenv(ENV_PARAM_PREFIX), f"{ENV_PASSWORD} or {ENV_PARAM_PREFIX}")
    params = _load_ssm_params(prefix, ["ttrss_password"])
    return _require(params.get("ttrss_password"), f"{prefix}ttrss_password")


def run_once() -> Dict[str, Any]:
    """
    Fetch categories and unread counters once and report them.

    Storing or acting on the result is up to the caller.
    """
    url = _require(_getenv(ENV_URL), ENV_URL)
    user = _require(_getenv(ENV_USER), ENV_USER)
    password = _resolve_password()
    timeout = float(_getenv(ENV_TIMEOUT, "15") or "15")

    with TTRSSClient(url, user, password, timeout=timeout) as client:
        categories = client.get_categories()
        if client.has_last_error():
            error = client.pull_last_error()
            logger.error("Fetching categories failed: %s", error)
            return {"ok": False, "categories": 0, "unread": {}, "error": error}

        counters = client.get_counters()
        error = client.pull_last_error()

    unread: Dict[str, int] = {}
    for c in counters:
        key = f"{'cat' if c.is_category else 'feed'}:{c.id}"
        unread[key] = c.count

    return {
        "ok": not error,
        "categories": len(categories),
        "unread": unread,
        "error": error or None,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return run_once()
