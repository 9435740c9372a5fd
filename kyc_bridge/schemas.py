from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional, Union


class WebhookPayload(BaseModel):
    # Provider sends more than this; unknown keys are kept for logging
    model_config = ConfigDict(extra="allow")

    transactionId: Optional[Union[str, int]] = None
    eventType: Optional[Any] = None
    applicationStatus: Optional[Any] = None
    eventTime: Optional[Any] = None


class OutputsRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transactionId: Optional[Union[str, int]] = None


class AuthTokenData(BaseModel):
    authToken: str
    transactionId: str
    expiresIn: int


class SdkConfig(BaseModel):
    authToken: str
    workflowId: str
    transactionId: str
    showLandingPage: bool = True
    inputs: Dict[str, str] = Field(default_factory=dict)


class SdkResult(BaseModel):
    """Terminal value handed back by the verification SDK."""
    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None
    message: Optional[str] = None
    code: Optional[Any] = None


class ResultView(BaseModel):
    status: str
    title: str
    message: str
    data: SdkResult
    outputs: Optional[Dict[str, Any]] = None
