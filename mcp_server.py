"""MCP server for the Mission Control comms backend.

Exposes the comms REST endpoints as MCP tools so AI clients can check
readiness and read or append to the agent-to-agent communication log.
"""

from __future__ import annotations

import json
import os
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from mcp.server.fastmcp import FastMCP

BASE_URL = os.environ.get("MC_BASE_URL", "http://127.0.0.1:3100").rstrip("/")
REQUEST_TIMEOUT_SEC = float(os.environ.get("MC_MCP_TIMEOUT_SEC", "10"))

mcp = FastMCP("mission-control-comms")


def _build_url(path: str, params: dict[str, Any] | None = None) -> str:
    query = urlencode(params or {}, doseq=True)
    return f"{BASE_URL}{path}{'?' + query if query else ''}"


def _request(method: str, path: str, params: dict[str, Any] | None = None, body: dict[str, Any] | None = None) -> dict[str, Any]:
    url = _build_url(path, params)
    data = None
    headers = {}
    if body is not None:
        data = json.dumps(body).encode("utf-8")
        headers["Content-Type"] = "application/json"
    request = Request(url=url, data=data, headers=headers, method=method)

    try:
        with urlopen(request, timeout=REQUEST_TIMEOUT_SEC) as response:
            charset = response.headers.get_content_charset() or "utf-8"
            payload = response.read().decode(charset)
            return {
                "ok": True,
                "base_url": BASE_URL,
                "status_code": int(response.status),
                "data": json.loads(payload) if payload else {},
            }
    except HTTPError as exc:
        details = ""
        try:
            details = exc.read().decode("utf-8", errors="replace")
        except Exception:
            details = ""
        return {
            "ok": False,
            "base_url": BASE_URL,
            "status_code": int(exc.code),
            "error": f"HTTP error {exc.code}",
            "details": details,
        }
    except URLError as exc:
        return {
            "ok": False,
            "base_url": BASE_URL,
            "error": "Connection error",
            "details": str(exc.reason),
        }
    except json.JSONDecodeError as exc:
        return {
            "ok": False,
            "base_url": BASE_URL,
            "error": "Invalid JSON response",
            "details": str(exc),
        }
    except Exception as exc:
        return {
            "ok": False,
            "base_url": BASE_URL,
            "error": "Unexpected error",
            "details": str(exc),
        }


def _http_get(path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    return _request("GET", path, params=params)


def _http_post(path: str, body: dict[str, Any]) -> dict[str, Any]:
    return _request("POST", path, body=body)


@mcp.tool()
def dashboard_ready() -> dict[str, Any]:
    """Return backend readiness from /ready."""
    return _http_get("/ready")


@mcp.tool()
def dashboard_capabilities() -> dict[str, Any]:
    """Return monitored agents, replay sizes and subscriber count from /capabilities."""
    return _http_get("/capabilities")


@mcp.tool()
def agent_comms(limit: int = 50, kind: str | None = None) -> dict[str, Any]:
    """Return recent agent-to-agent events (newest first), optionally filtered by kind."""
    payload = _http_get("/api/agent-comms", {"limit": max(0, int(limit))})
    if not payload.get("ok") or not kind:
        return payload

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    rows = data.get("communications") if isinstance(data.get("communications"), list) else []
    data["communications"] = [row for row in rows if isinstance(row, dict) and row.get("kind") == kind]
    payload["data"] = data
    return payload


@mcp.tool()
def log_agent_comm(from_agent: str, to_agent: str, message: str, status: str = "sent") -> dict[str, Any]:
    """Append a manually reported communication via POST /api/agent-comms."""
    return _http_post(
        "/api/agent-comms",
        {"from": from_agent, "to": to_agent, "message": message, "status": status},
    )


if __name__ == "__main__":
    mcp.run()
