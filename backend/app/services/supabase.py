import json
import logging
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request as UrlRequest, urlopen

from app.core.config import SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL
from app.core.errors import UpstreamError

logger = logging.getLogger("uvicorn.error")
REQUEST_TIMEOUT = 25


def is_configured() -> bool:
    return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)


def supabase_request(
    *,
    method: str,
    path: str,
    api_key: Optional[str] = None,
    bearer: Optional[str] = None,
    body: Optional[bytes] = None,
    content_type: Optional[str] = None,
    extra_headers: Optional[dict] = None,
) -> tuple[int, str]:
    if not SUPABASE_URL:
        raise UpstreamError("Supabase não configurado (SUPABASE_URL).", status_code=500)

    key = api_key or SUPABASE_SERVICE_ROLE_KEY or SUPABASE_ANON_KEY
    headers = {
        "apikey": key,
        "Authorization": f"Bearer {bearer or key}",
    }
    if content_type:
        headers["Content-Type"] = content_type
    if extra_headers:
        headers.update(extra_headers)

    endpoint = f"{SUPABASE_URL}{path if path.startswith('/') else f'/{path}'}"
    request_obj = UrlRequest(endpoint, method=method.upper(), data=body, headers=headers)
    try:
        with urlopen(request_obj, timeout=REQUEST_TIMEOUT) as response:
            payload = response.read().decode("utf-8", errors="ignore")
            return int(response.status), payload
    except HTTPError as exc:
        payload = exc.read().decode("utf-8", errors="ignore")
        return int(exc.code), payload
    except URLError as exc:
        logger.warning("Falha de conexão com Supabase (%s %s): %s", method.upper(), path, exc.reason)
        raise UpstreamError(f"Falha de conexão com Supabase: {exc.reason}") from exc


def supabase_json_request(
    *,
    method: str,
    path: str,
    payload: Optional[dict] = None,
    api_key: Optional[str] = None,
    bearer: Optional[str] = None,
) -> tuple[int, Any]:
    body = json.dumps(payload).encode("utf-8") if payload is not None else None
    response_status, response_payload = supabase_request(
        method=method,
        path=path,
        api_key=api_key,
        bearer=bearer,
        body=body,
        content_type="application/json" if body is not None else None,
    )
    try:
        parsed = json.loads(response_payload or "{}")
    except json.JSONDecodeError:
        parsed = {"message": response_payload}
    return response_status, parsed


def error_message(parsed: Any, default: str) -> str:
    if isinstance(parsed, dict):
        for key in ("msg", "message", "error_description", "error"):
            value = parsed.get(key)
            if value:
                return str(value)
    return default
