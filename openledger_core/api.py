"""
REST / HTTP gateway for an OpenLedger ledger.

Built on ``aiohttp``.  It exposes the ``LedgerTransport`` surface of an
in-process ledger so that remote clients can submit operations they have
signed themselves.  The gateway never signs anything.

Endpoints
---------
GET  /health              Ledger summary
GET  /asset/{contract}    Public asset info (price, rate, kind)
POST /submit              Submit a signed operation
POST /query               Run a signed read

POST bodies::

    {"contract": "0x..", "operation": "deposit", "args": {...},
     "message": "<hex digest>", "signature": "<65-byte hex>"}

``/query`` takes ``"selector"`` instead of ``"operation"``.  Responses
carry the ledger's ``SubmitResult``; the HTTP status reflects its error
code group.

Security
--------
- API-key authentication on POST endpoints via ``X-API-Key`` header only.
  Timing-safe comparison via ``hmac.compare_digest``.
- Per-IP token-bucket rate limiter (configurable RPM).
- CORS middleware (origins configurable via ``cors_origins``).
- Request body size cap (``max_body_bytes``, default 1 MiB).

Usage:
    api = APIServer(ledger, host="127.0.0.1", port=8080)
    await api.start()    # call inside existing event loop
    ...
    await api.stop()
"""

from __future__ import annotations

import hmac
import json
import logging
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

from openledger_core.errors import ErrorCode, OpenLedgerError
from openledger_core.signer import Signature

if TYPE_CHECKING:
    from openledger_core.config import APIConfig
    from openledger_core.ledger import InMemoryLedger

logger = logging.getLogger("openledger_api")


# ═══════════════════════════════════════════════════════════════════
#  Input helpers
# ═══════════════════════════════════════════════════════════════════

def _error(status: int, message: str, code: ErrorCode = ErrorCode.INVALID_ARGUMENT) -> web.Response:
    return web.json_response(
        {"success": False, "error_code": int(code), "err_msg": message},
        status=status,
    )


def _http_status(code: ErrorCode) -> int:
    """HTTP status for a ledger error code group."""
    if code == ErrorCode.SUCCESS:
        return 200
    if code.is_authorization:
        return 403
    if code.is_state_conflict:
        return 409
    if 400 <= int(code) < 500:
        return 404
    if int(code) >= 500:
        return 502
    return 400


def _parse_message(value: Any) -> bytes:
    if not isinstance(value, str):
        raise web.HTTPBadRequest(text="message must be a hex string")
    body = value[2:] if value.startswith("0x") else value
    try:
        raw = bytes.fromhex(body)
    except ValueError:
        raise web.HTTPBadRequest(text="message is not valid hex") from None
    if len(raw) != 32:
        raise web.HTTPBadRequest(text="message must be a 32-byte digest")
    return raw


# ═══════════════════════════════════════════════════════════════════
#  Rate Limiter (per-IP token bucket)
# ═══════════════════════════════════════════════════════════════════

class _TokenBucket:
    """Simple per-IP token-bucket rate limiter."""

    __slots__ = ("_buckets", "_rpm")

    def __init__(self, rpm: int):
        self._rpm = rpm  # 0 = unlimited
        # ip -> (tokens, last_refill_timestamp)
        self._buckets: dict[str, list[float]] = defaultdict(lambda: [float(rpm), time.monotonic()])

    def allow(self, ip: str) -> bool:
        if self._rpm <= 0:
            return True
        bucket = self._buckets[ip]
        now = time.monotonic()
        elapsed = now - bucket[1]
        bucket[0] = min(float(self._rpm), bucket[0] + elapsed * (self._rpm / 60.0))
        bucket[1] = now
        if bucket[0] >= 1.0:
            bucket[0] -= 1.0
            return True
        return False


# ═══════════════════════════════════════════════════════════════════
#  Middleware factories
# ═══════════════════════════════════════════════════════════════════

def _make_rate_limit_middleware(bucket: _TokenBucket):
    """aiohttp middleware that enforces per-IP rate limits."""

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler):
        ip = request.remote or "unknown"
        if not bucket.allow(ip):
            raise web.HTTPTooManyRequests(
                text="Rate limit exceeded. Try again later.",
                headers={"Retry-After": "5"},
            )
        return await handler(request)

    return rate_limit_middleware


def _make_api_key_middleware(api_key: str):
    """aiohttp middleware that requires an API key on POST.

    The key is only read from the ``X-API-Key`` header, never from query
    parameters.
    """

    @web.middleware
    async def api_key_middleware(request: web.Request, handler):
        if request.method in ("POST", "PUT", "DELETE"):
            key = request.headers.get("X-API-Key", "")
            if not hmac.compare_digest(key, api_key):
                raise web.HTTPUnauthorized(text="Invalid or missing API key")
        return await handler(request)

    return api_key_middleware


def _make_cors_middleware(origins: list[str]):
    """aiohttp middleware that adds CORS headers for explicit origins (no ``*``)."""

    allowed = set(origins) if origins else set()
    allowed.discard("*")

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        origin = request.headers.get("Origin", "")
        if request.method == "OPTIONS":
            resp = web.Response(status=204)
        else:
            resp = await handler(request)

        if origin in allowed:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type, X-API-Key"
            resp.headers["Access-Control-Max-Age"] = "3600"
        return resp

    return cors_middleware


class APIServer:
    """Thin aiohttp wrapper around an ``InMemoryLedger``."""

    def __init__(
        self,
        ledger: InMemoryLedger,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        api_config: APIConfig | None = None,
    ):
        self.ledger = ledger
        self.host = host
        self.port = port
        self._api_config = api_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    # ── lifecycle ────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        middlewares: list = []
        max_body = 1_048_576

        if self._api_config is not None:
            cfg = self._api_config
            max_body = cfg.max_body_bytes
            if cfg.rate_limit_rpm > 0:
                middlewares.append(_make_rate_limit_middleware(_TokenBucket(cfg.rate_limit_rpm)))
            if cfg.cors_origins:
                middlewares.append(_make_cors_middleware(cfg.cors_origins))
            if cfg.api_key:
                middlewares.append(_make_api_key_middleware(cfg.api_key))

        app = web.Application(middlewares=middlewares, client_max_size=max_body)
        self._register_routes(app)
        self._app = app
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health)
        app.router.add_get("/asset/{contract}", self._asset)
        app.router.add_post("/submit", self._submit)
        app.router.add_post("/query", self._query)

    # ── handlers ─────────────────────────────────────────────────

    async def _health(self, _request: web.Request) -> web.Response:
        contracts = self.ledger.contracts
        return web.json_response({
            "ok": True,
            "ledger_id": self.ledger.ledger_id,
            "contracts": {addr: c.kind for addr, c in contracts.items()},
        })

    async def _asset(self, request: web.Request) -> web.Response:
        contract = request.match_info["contract"]
        try:
            target = self.ledger.get_contract(contract)
        except OpenLedgerError as exc:
            return _error(_http_status(exc.code), exc.message, exc.code)
        info = self.ledger.call(target.address, "asset_info").result
        info["kind"] = target.kind
        if "total_note_size" in target.public:
            info["total_note_size"] = self.ledger.call(target.address, "total_note_size").result
        return web.json_response(info, dumps=_json_dumps)

    async def _read_signed_body(self, request: web.Request, name_key: str) -> tuple:
        try:
            body = await request.json()
        except web.HTTPException:
            raise
        except Exception as exc:
            raise web.HTTPBadRequest(text="Invalid JSON body") from exc
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(text="JSON body must be an object")

        contract = body.get("contract")
        name = body.get(name_key)
        args = body.get("args", {})
        if not isinstance(contract, str) or not contract:
            raise web.HTTPBadRequest(text="contract is required")
        if not isinstance(name, str) or not name:
            raise web.HTTPBadRequest(text=f"{name_key} is required")
        if not isinstance(args, dict):
            raise web.HTTPBadRequest(text="args must be an object")
        message = _parse_message(body.get("message"))
        try:
            signature = Signature.from_hex(str(body.get("signature", "")))
        except OpenLedgerError as exc:
            raise web.HTTPBadRequest(text=exc.message) from None
        return contract, name, args, message, signature

    async def _submit(self, request: web.Request) -> web.Response:
        contract, operation, args, message, signature = await self._read_signed_body(
            request, "operation"
        )
        result = self.ledger.submit(contract, operation, args, message, signature)
        return web.json_response(
            result.to_dict(), status=_http_status(result.error_code), dumps=_json_dumps
        )

    async def _query(self, request: web.Request) -> web.Response:
        contract, selector, args, message, signature = await self._read_signed_body(
            request, "selector"
        )
        result = self.ledger.query_state(contract, selector, args, message, signature)
        return web.json_response(
            result.to_dict(), status=_http_status(result.error_code), dumps=_json_dumps
        )


def _json_dumps(obj: Any) -> str:
    """JSON serialiser that handles non-standard types."""
    return json.dumps(obj, default=str)
