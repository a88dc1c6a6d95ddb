"""
HTTP Session Helpers
====================

Shared requests session with retries for the RxNav and openFDA clients.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config.dispense_config import SERVICE_CONFIG

logger = logging.getLogger(__name__)

_STATUS_FORCELIST = (429, 500, 502, 503, 504)


def make_session(
    timeout: float = SERVICE_CONFIG.request_timeout,
    max_retries: int = SERVICE_CONFIG.max_retries,
    user_agent: str = SERVICE_CONFIG.user_agent,
) -> requests.Session:
    """
    Create a session that retries 429/5xx GETs with exponential backoff.

    The default timeout is stored on the session as `request_timeout`.
    """
    session = requests.Session()

    retries = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=0.5,
        status_forcelist=_STATUS_FORCELIST,
        allowed_methods=("GET",),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retries, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    session.headers.update({
        "User-Agent": user_agent,
        "Accept": "application/json",
    })
    session.request_timeout = timeout
    return session


def get_json(
    session: requests.Session,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    GET and decode JSON.

    Raises requests.HTTPError (carrying the response) for 4xx/5xx, and
    ValueError when the body is not a JSON object.
    """
    timeout = timeout or getattr(session, "request_timeout", SERVICE_CONFIG.request_timeout)
    resp = session.get(url, params=params or {}, timeout=timeout)
    if resp.status_code >= 400:
        body = (resp.text or "")[:300]
        raise requests.HTTPError(f"HTTP {resp.status_code} for {resp.url}\n{body}", response=resp)
    data = resp.json()
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object from {resp.url}, got {type(data).__name__}")
    return data


def section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Nested JSON object under `key`, or {} when absent or not an object."""
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def object_list(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    """JSON objects in the list under `key`; anything else is dropped."""
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def is_not_found(error: requests.HTTPError) -> bool:
    return error.response is not None and error.response.status_code == 404
