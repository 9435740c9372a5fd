"""
Verification flow as the browser runs it:
collect a name, get a token from the proxy, launch the HyperVerge SDK,
and turn the SDK's terminal status into the screen the user sees.

The SDK itself is opaque. Anything with an async ``launch(config)``
that eventually returns one terminal result can drive the flow.
"""
import enum
import logging
from typing import Any, Dict, Optional, Protocol, Union

import httpx
from pydantic import ValidationError

from .config import ClientSettings
from .schemas import ResultView, SdkConfig, SdkResult
from .utils import generate_transaction_id

logger = logging.getLogger("kyc_bridge.client")

# SDK status -> (view status, title, message)
RESULT_VIEWS = {
    "auto_approved": (
        "success",
        "Verification Successful!",
        "Your identity has been verified successfully.",
    ),
    "auto_declined": (
        "declined",
        "Verification Failed",
        "We could not verify your identity. Please try again or contact support.",
    ),
    "needs_review": (
        "review",
        "Under Review",
        "Your application is under manual review. We will notify you once the review is complete.",
    ),
    "user_cancelled": (
        "cancelled",
        "Verification Cancelled",
        "You cancelled the verification process. Click below to try again.",
    ),
    "error": (
        "error",
        "Technical Error",
        "An error occurred: {detail}",
    ),
}

UNKNOWN_VIEW = (
    "unknown",
    "Unknown Status",
    "An unexpected status was returned. Please contact support.",
)

DEFAULT_ERROR = "Failed to start verification. Please try again."


class BackendError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SdkError(Exception):
    """The SDK could not be launched at all."""


class VerificationSdk(Protocol):
    async def launch(self, config: SdkConfig) -> Union[SdkResult, Dict[str, Any]]:
        ...


class FlowState(str, enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SDK_ACTIVE = "sdk_active"
    RESOLVED = "resolved"


def dispatch_result(result: SdkResult) -> ResultView:
    view_status, title, message = RESULT_VIEWS.get(result.status, UNKNOWN_VIEW)
    if view_status == "error":
        message = message.format(detail=result.message or "Unknown error")
    elif view_status == "unknown":
        logger.warning(f"Unknown status: {result.status}")
    return ResultView(status=view_status, title=title, message=message, data=result)


class BackendApi:
    """Calls the proxy service the same way the browser app does."""

    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        async with httpx.AsyncClient(base_url=self.base_url, transport=self.transport) as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                raise BackendError(_backend_message(e.response) or str(e), e.response.status_code) from e
            except httpx.RequestError as e:
                raise BackendError(str(e) or DEFAULT_ERROR) from e
            except ValueError as e:
                raise BackendError(f"Malformed response from {path}") from e

    async def get_auth_token(self, transaction_id: str) -> dict:
        return await self._request("GET", "/auth", params={"transactionId": transaction_id})

    async def get_outputs(self, transaction_id: str) -> dict:
        return await self._request("POST", "/outputs", json={"transactionId": transaction_id})


def _backend_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return None


class VerificationFlow:
    def __init__(self, api: BackendApi, sdk: VerificationSdk, workflow_id: str):
        self.api = api
        self.sdk = sdk
        self.workflow_id = workflow_id
        self.try_again()

    @classmethod
    def from_settings(cls, settings: ClientSettings, sdk: VerificationSdk, transport=None):
        return cls(BackendApi(settings.BACKEND_URL, transport=transport), sdk, settings.HYPERVERGE_WORKFLOW_ID)

    @property
    def loading(self) -> bool:
        return self.state in (FlowState.SUBMITTING, FlowState.SDK_ACTIVE)

    def try_again(self):
        self.state = FlowState.IDLE
        self.full_name = ""
        self.transaction_id: Optional[str] = None
        self.result: Optional[ResultView] = None
        self.error = ""

    async def submit(self, full_name: str) -> Optional[ResultView]:
        if self.loading:
            logger.warning("Verification already in progress, ignoring submit")
            return None

        self.full_name = full_name
        if not full_name.strip():
            self.error = "Please enter your full name"
            return None

        self.error = ""
        self.result = None
        self.state = FlowState.SUBMITTING
        self.transaction_id = generate_transaction_id("txn")
        logger.info(f"Starting KYC verification, transaction: {self.transaction_id}")

        try:
            config = await self._build_sdk_config()
            self.state = FlowState.SDK_ACTIVE
            logger.info("Launching HyperVerge SDK...")
            raw = await self.sdk.launch(config)
            sdk_result = raw if isinstance(raw, SdkResult) else SdkResult.model_validate(raw)
        except Exception as e:
            # Any failure before a terminal result returns the flow to idle
            logger.error(f"Error in KYC flow: {e!r}")
            self.state = FlowState.IDLE
            if isinstance(e, ValidationError):
                self.error = "The verification SDK returned an invalid result"
            else:
                self.error = str(e) or DEFAULT_ERROR
            return None

        logger.info(f"SDK result: {sdk_result.status}")
        self.result = dispatch_result(sdk_result)
        self.state = FlowState.RESOLVED

        if self.result.status == "success":
            await self._attach_outputs()
        return self.result

    async def _build_sdk_config(self) -> SdkConfig:
        auth = await self.api.get_auth_token(self.transaction_id)
        data = auth.get("data") if isinstance(auth, dict) else None
        token = data.get("authToken") if isinstance(data, dict) else None
        if not token:
            raise BackendError("Failed to get auth token from backend")

        return SdkConfig(
            authToken=token,
            workflowId=self.workflow_id,
            transactionId=self.transaction_id,
            showLandingPage=True,
            inputs={"Username": self.full_name},
        )

    async def _attach_outputs(self):
        try:
            outputs = await self.api.get_outputs(self.transaction_id)
        except BackendError as e:
            logger.error(f"Error fetching outputs: {e}")
            return
        data = outputs.get("data") if isinstance(outputs, dict) else None
        if isinstance(data, dict):
            logger.info(f"Logs (Results API): {data.get('logs')}")
            logger.info(f"Outputs (Outputs API): {data.get('outputs')}")
            self.result = self.result.model_copy(update={"outputs": data})
