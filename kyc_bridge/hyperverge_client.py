import logging
from typing import Any, Optional

import httpx

from .config import Settings

logger = logging.getLogger("kyc_bridge.hyperverge")


class UpstreamError(Exception):
    """
    A HyperVerge call that did not produce a usable response.
    status_code is None for transport failures and malformed bodies,
    detail is the upstream error body when there is one, else the message.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail if detail is not None else message


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class HypervergeClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self.headers = {
            "appId": settings.HYPERVERGE_APP_ID,
            "appKey": settings.HYPERVERGE_APP_KEY,
            "Content-Type": "application/json",
        }

    async def _post(self, url: str, payload: dict, headers: dict) -> dict:
        async with httpx.AsyncClient(transport=self.transport) as client:
            try:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise UpstreamError(
                    f"Request failed with status code {e.response.status_code}",
                    status_code=e.response.status_code,
                    detail=_error_body(e.response),
                ) from e
            except httpx.RequestError as e:
                raise UpstreamError(str(e) or type(e).__name__) from e

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(f"Malformed response from {url}") from e
        if not isinstance(body, dict):
            raise UpstreamError(f"Malformed response from {url}")
        return body

    async def generate_auth_token(self, transaction_id: str) -> str:
        # Auth API takes the credentials in the body, not the headers
        payload = {
            "appId": self.settings.HYPERVERGE_APP_ID,
            "appKey": self.settings.HYPERVERGE_APP_KEY,
            "expiry": self.settings.TOKEN_EXPIRY,
            "transactionId": transaction_id,
            "workflowId": self.settings.HYPERVERGE_WORKFLOW_ID,
        }
        body = await self._post(
            self.settings.HYPERVERGE_AUTH_URL, payload, {"Content-Type": "application/json"}
        )
        result = body.get("result")
        token = result.get("authToken") if isinstance(result, dict) else None
        if not token:
            raise UpstreamError("Auth response did not contain result.authToken")
        return token

    async def fetch_logs(self, transaction_id: str) -> dict:
        return await self._post(
            self.settings.HYPERVERGE_LOGS_URL, {"transactionId": transaction_id}, self.headers
        )

    async def fetch_outputs(self, transaction_id: str) -> dict:
        payload = {
            "transactionId": transaction_id,
            "workflowId": self.settings.HYPERVERGE_WORKFLOW_ID,
            "sendDebugInfo": "yes",
            "sendAllDebugInfo": "yes",
        }
        return await self._post(self.settings.HYPERVERGE_OUTPUT_URL, payload, self.headers)
