from __future__ import annotations

import csv
import gzip
import io
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from databridge.exceptions import SpApiError, SpApiQuotaError
from databridge.settings import settings
from databridge.spapi.constants import FBA_INVENTORY_API_VERSION, REPORTS_API_VERSION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LwaToken:
    access_token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, SpApiError):
        return exc.transient
    return isinstance(exc, httpx.TransportError)


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:500]
    errors = data.get("errors") if isinstance(data, dict) else None
    if errors:
        return "; ".join(f"{e.get('code')}: {e.get('message')}" for e in errors if isinstance(e, dict))
    return str(data)[:500]


class SpApiClient:
    """
    Selling Partner API 클라이언트 (LWA refresh token 방식).

    - access token은 만료 60초 전까지 캐시
    - 429 -> SpApiQuotaError, 그 외 HTTP >= 300 -> SpApiError
    - 429 / 5xx / 네트워크 오류는 tenacity로 제한된 횟수만큼 재시도
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        region: str,
        endpoint: str | None = None,
        token_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
        retry_count: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self.region = region.upper()
        self._endpoint = (endpoint or settings.endpoint_for_region(self.region)).rstrip("/")
        self._token_url = token_url or settings.spapi_lwa_token_url
        self._transport = transport
        self._timeout = httpx.Timeout(settings.spapi_request_timeout, connect=10.0)
        self._download_timeout = httpx.Timeout(settings.spapi_download_timeout, connect=10.0)
        self._token: LwaToken | None = None
        self._retrying = Retrying(
            stop=stop_after_attempt(retry_count or settings.spapi_retry_count),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception(_is_transient),
            reraise=True,
            sleep=sleep,
            before_sleep=lambda retry_state: logger.warning(
                f"[SP-API] Retrying ({retry_state.attempt_number}): {retry_state.outcome.exception()}"
            ),
        )

    @classmethod
    def from_credential(cls, credential, **kwargs) -> "SpApiClient":
        return cls(
            client_id=credential.client_id,
            client_secret=credential.client_secret,
            refresh_token=credential.refresh_token,
            region=credential.region,
            **kwargs,
        )

    def _http(self, timeout: httpx.Timeout | None = None) -> httpx.Client:
        return httpx.Client(timeout=timeout or self._timeout, transport=self._transport)

    def access_token(self) -> str:
        now = datetime.now(timezone.utc)
        if self._token and self._token.is_valid(now):
            return self._token.access_token

        data = {
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        with self._http() as client:
            resp = client.post(self._token_url, data=data)

        if resp.status_code == 429:
            raise SpApiQuotaError(f"LWA token request throttled: {_error_message(resp)}")
        if resp.status_code >= 300:
            raise SpApiError(f"LWA token request failed: {_error_message(resp)}", status_code=resp.status_code)

        payload = resp.json()
        expires_in = int(payload.get("expires_in", 3600))
        self._token = LwaToken(
            access_token=payload["access_token"],
            expires_at=now + timedelta(seconds=max(expires_in - 60, 0)),
        )
        logger.info(f"[SP-API] Obtained LWA access token ({self.region})")
        return self._token.access_token

    def _send(self, method: str, path: str, params: dict[str, Any] | None, payload: dict[str, Any] | None) -> dict[str, Any]:
        headers = {
            "x-amz-access-token": self.access_token(),
            "accept": "application/json",
        }
        url = f"{self._endpoint}{path}"
        with self._http() as client:
            resp = client.request(method, url, params=params, json=payload, headers=headers)

        if resp.status_code == 429:
            raise SpApiQuotaError(f"QuotaExceeded on {method} {path}: {_error_message(resp)}")
        if resp.status_code >= 300:
            raise SpApiError(
                f"SP-API {method} {path} failed: HTTP {resp.status_code} {_error_message(resp)}",
                status_code=resp.status_code,
                context={"path": path},
            )
        if not resp.content:
            return {}
        return resp.json()

    def request(self, method: str, path: str, params: dict[str, Any] | None = None,
                payload: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._retrying(self._send, method, path, params, payload)

    # ---- FBA Inventory ----

    def get_inventory_summaries(self, marketplace_id: str, next_token: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "details": "true",
            "granularityType": "Marketplace",
            "granularityId": marketplace_id,
            "marketplaceIds": marketplace_id,
        }
        if next_token:
            params["nextToken"] = next_token
        return self.request("GET", f"/fba/inventory/{FBA_INVENTORY_API_VERSION}/summaries", params=params)

    # ---- Reports ----

    def create_report(self, report_type: str, marketplace_ids: Sequence[str],
                      start: datetime, end: datetime) -> str:
        body = {
            "reportType": report_type,
            "marketplaceIds": list(marketplace_ids),
            "dataStartTime": start.astimezone(timezone.utc).isoformat(),
            "dataEndTime": end.astimezone(timezone.utc).isoformat(),
        }
        data = self.request("POST", f"/reports/{REPORTS_API_VERSION}/reports", payload=body)
        report_id = data.get("reportId")
        if not report_id:
            raise SpApiError(f"createReport returned no reportId for {list(marketplace_ids)}")
        return report_id

    def get_report(self, report_id: str) -> dict[str, Any]:
        return self.request("GET", f"/reports/{REPORTS_API_VERSION}/reports/{report_id}")

    def get_report_document(self, document_id: str) -> dict[str, Any]:
        return self.request("GET", f"/reports/{REPORTS_API_VERSION}/documents/{document_id}")

    def download_document(self, document: dict[str, Any]) -> list[dict[str, Any]]:
        """
        리포트 문서를 내려받아 행 목록으로 파싱합니다.
        GZIP 압축 해제 후 JSON 배열이면 그대로, 아니면 탭 구분 텍스트로 읽습니다.
        """
        url = document.get("url")
        if not url:
            raise SpApiError(f"Report document {document.get('reportDocumentId')} has no url")

        with self._http(self._download_timeout) as client:
            resp = client.get(url)
        if resp.status_code >= 300:
            raise SpApiError(f"Report document download failed: HTTP {resp.status_code}", status_code=resp.status_code)

        raw = resp.content
        if (document.get("compressionAlgorithm") or "").upper() == "GZIP":
            raw = gzip.decompress(raw)
        return parse_report_text(decode_report_bytes(raw))


def decode_report_bytes(raw: bytes) -> str:
    # 일부 마켓(EU) 플랫 파일은 Cp1252로 내려온다
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("cp1252", errors="replace")


def parse_report_text(text: str) -> list[dict[str, Any]]:
    stripped = text.lstrip()
    if stripped.startswith("[") or stripped.startswith("{"):
        data = json.loads(stripped)
        if isinstance(data, dict):
            data = data.get("data") or data.get("rows") or []
        return [row for row in data if isinstance(row, dict)]

    reader = csv.DictReader(io.StringIO(text), delimiter="\t")
    return [dict(row) for row in reader]


class SpApiClientPool:
    """
    credential id 단위로 SpApiClient를 캐시합니다 (기본 30분).
    """

    def __init__(self, ttl_seconds: float | None = None, factory: Callable[..., SpApiClient] | None = None,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = settings.spapi_client_cache_ttl if ttl_seconds is None else ttl_seconds
        self._factory = factory or SpApiClient.from_credential
        self._clock = clock
        self._clients: dict[Any, tuple[SpApiClient, float]] = {}

    def get(self, credential) -> SpApiClient:
        key = credential.id
        cached = self._clients.get(key)
        now = self._clock()
        if cached and cached[1] > now:
            return cached[0]

        client = self._factory(credential)
        self._clients[key] = (client, now + self._ttl)
        logger.info(f"[SP-API] Client created for credential id: {key} ({credential.account_name or credential.region})")
        return client

    def clear(self) -> None:
        self._clients.clear()
