"""HTTP gateway to the Odyssey ERP cloud API.

The bearer token is cached on the gateway instance and only re-fetched when it
is missing or expired. Failed calls are raised to the caller, never retried.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600


class ErpError(Exception):
    def __init__(self, message: str, code: Any = None, details: Any = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ErpNotConfiguredError(ErpError):
    def __init__(self):
        super().__init__(
            "Odyssey ERP credentials not configured",
            "AUTH_NOT_CONFIGURED",
            "Set ODYSSEY_ERP_API_KEY or ODYSSEY_ERP_USERNAME/ODYSSEY_ERP_PASSWORD",
        )


class UpstreamUnavailableError(ErpError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message, "UPSTREAM_UNAVAILABLE", details)


@dataclass
class ErpConfig:
    base_url: str
    company_id: str
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_sec: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(
            self.base_url
            and self.company_id
            and (self.api_key or (self.username and self.password))
        )


def load_erp_config() -> ErpConfig:
    return ErpConfig(
        base_url=os.environ.get("ODYSSEY_ERP_API_URL", "https://api.blinfo.com").rstrip("/"),
        company_id=os.environ.get("ODYSSEY_ERP_COMPANY_ID", "SPUNCAST"),
        api_key=os.environ.get("ODYSSEY_ERP_API_KEY"),
        api_secret=os.environ.get("ODYSSEY_ERP_API_SECRET"),
        username=os.environ.get("ODYSSEY_ERP_USERNAME"),
        password=os.environ.get("ODYSSEY_ERP_PASSWORD"),
        timeout_sec=float(os.environ.get("ODYSSEY_ERP_TIMEOUT", "30")),
    )


@dataclass
class TokenCache:
    token: Optional[str] = None
    expiry: Optional[datetime] = None

    def valid(self, now: datetime) -> bool:
        return bool(self.token and self.expiry and now < self.expiry)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _error_body(response: requests.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"body": body}


def _unwrap(data: Any, *keys: str) -> list:
    if isinstance(data, dict):
        for key in keys:
            if key in data:
                return data[key] or []
        return []
    return data or []


class OdysseyErpGateway:
    def __init__(
        self,
        config: ErpConfig,
        http: requests.Session | None = None,
        clock: Callable[[], datetime] = _now,
    ):
        self.config = config
        self.token_cache = TokenCache()
        self._http = http or requests.Session()
        self._clock = clock

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.config.base_url}/{self.config.company_id}{path}"

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self._http.request(method, url, timeout=self.config.timeout_sec, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.error("Odyssey ERP unreachable", extra={"url": url, "error": str(exc)})
            raise UpstreamUnavailableError(f"Odyssey ERP unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise ErpError(f"Odyssey ERP request failed: {exc}", "REQUEST_ERROR") from exc

    def authenticate(self) -> str:
        if self.token_cache.valid(self._clock()):
            return self.token_cache.token
        if not self.config.configured:
            raise ErpNotConfiguredError()

        if self.config.api_key:
            body = {"apiKey": self.config.api_key, "apiSecret": self.config.api_secret}
        else:
            body = {"username": self.config.username, "password": self.config.password}

        logger.info("authenticating with Odyssey ERP")
        response = self._send(
            "POST",
            self._url("/auth/token"),
            json=body,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        if not response.ok:
            details = _error_body(response)
            raise ErpError(
                details.get("message") or f"Authentication failed: {response.reason}",
                response.status_code,
                details,
            )

        data = response.json()
        token = data.get("token") or data.get("access_token")
        if not token:
            raise ErpError("Authentication response did not include a token", "AUTH_ERROR", data)
        expires_in = data.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS
        self.token_cache = TokenCache(
            token=token, expiry=self._clock() + timedelta(seconds=float(expires_in))
        )
        return token

    def request(self, method: str, path: str, params: dict | None = None, json: Any = None) -> Any:
        token = self.authenticate()
        logger.info("Odyssey ERP request", extra={"method": method, "path": path})
        response = self._send(
            method,
            self._url(path),
            params=params,
            json=json,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "Authorization": f"Bearer {token}",
            },
        )
        if not response.ok:
            details = _error_body(response)
            raise ErpError(
                details.get("message") or f"API request failed: {response.reason}",
                response.status_code,
                details,
            )
        return response.json()

    def fetch_products(
        self,
        modified_since: str | None = None,
        product_number: str | None = None,
        category: str | None = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[dict]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if modified_since:
            params["modifiedSince"] = modified_since
        if product_number:
            params["itemNumber"] = product_number
        if category:
            params["category"] = category
        return _unwrap(self.request("GET", "/api/items", params=params), "items", "data")

    def fetch_shop_orders(
        self,
        status: str | None = None,
        job_number: str | None = None,
        part_number: str | None = None,
        limit: int = 500,
        offset: int = 0,
    ) -> list[dict]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if job_number:
            params["orderNumber"] = job_number
        if part_number:
            params["itemNumber"] = part_number
        data = self.request("GET", "/api/shop-orders", params=params)
        return _unwrap(data, "orders", "shopOrders", "data")

    def fetch_work_centers(self, active: bool | None = None) -> list[dict]:
        params = {"active": str(active).lower()} if active is not None else None
        return _unwrap(self.request("GET", "/api/work-centers", params=params), "workCenters", "data")

    def test_connection(self) -> dict:
        try:
            work_centers = self.fetch_work_centers(active=True)
        except ErpError as exc:
            return {"success": False, "message": str(exc), "code": exc.code}
        return {
            "success": True,
            "message": "Connection successful",
            "work_centers_found": len(work_centers),
        }

    def status(self) -> dict:
        return {
            "configured": self.config.configured,
            "api_url": self.config.base_url,
            "company_id": self.config.company_id,
            "has_api_key": bool(self.config.api_key),
            "has_credentials": bool(self.config.username and self.config.password),
            "token_cached": self.token_cache.valid(self._clock()),
        }
