import json
import logging
import time
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configure Logging with UTC/Local Time fix
logging.Formatter.converter = time.localtime
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("kyc_bridge")

from .config import Settings, load_settings
from .hyperverge_client import HypervergeClient, UpstreamError
from .schemas import AuthTokenData, OutputsRequest, WebhookPayload
from .utils import generate_transaction_id, presence, utc_timestamp

ENDPOINTS = {
    "auth": "GET /auth?transactionId=xxx",
    "results": "GET /results?transactionId=xxx",
    "webhook": "POST /results (webhook)",
    "outputs": "GET /outputs?transactionId=xxx",
    "outputsPost": "POST /outputs",
    "health": "GET /health",
}

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_hyperverge_client(request: Request) -> HypervergeClient:
    return request.app.state.hyperverge_client


def error_response(exc: UpstreamError, message: str, **envelope) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code or 500,
        content={**envelope, "status": "error", "message": message, "error": exc.detail},
    )


async def read_json_body(request: Request):
    """Request body as parsed JSON, or None when it is empty or not JSON."""
    try:
        return await request.json()
    except ValueError:
        return None


@router.get("/")
async def root(settings: Settings = Depends(get_settings)):
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
        "timestamp": utc_timestamp(),
        "endpoints": ENDPOINTS,
        "config": {
            "appId": presence(settings.HYPERVERGE_APP_ID, "Configured"),
            "workflowId": presence(settings.HYPERVERGE_WORKFLOW_ID, "Configured"),
            "tokenExpiry": f"{settings.TOKEN_EXPIRY} seconds",
        },
    }


@router.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    return {
        "status": "healthy",
        "timestamp": utc_timestamp(),
        "config": {
            "appId": presence(settings.HYPERVERGE_APP_ID),
            "appKey": presence(settings.HYPERVERGE_APP_KEY),
            "workflowId": presence(settings.HYPERVERGE_WORKFLOW_ID),
            "tokenExpiry": f"{settings.TOKEN_EXPIRY} seconds",
        },
    }


@router.get("/auth")
async def auth_token(
    transactionId: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    hyperverge: HypervergeClient = Depends(get_hyperverge_client),
):
    """
    Short-lived HyperVerge auth token for SDK initialization.
    A transactionId is generated when the caller does not send one.
    """
    if not transactionId:
        transactionId = generate_transaction_id("demo")
        logger.info(f"No transactionId provided, auto-generated: {transactionId}")

    logger.info(f"Generating auth token for transactionId: {transactionId}")
    try:
        token = await hyperverge.generate_auth_token(transactionId)
    except UpstreamError as e:
        logger.error(f"Error generating auth token: {e.detail}")
        return error_response(e, "Failed to generate auth token")

    logger.info("Auth token generated successfully")
    data = AuthTokenData(authToken=token, transactionId=transactionId, expiresIn=settings.TOKEN_EXPIRY)
    return {"status": "success", "data": data.model_dump()}


@router.get("/results")
async def view_results(
    transactionId: Optional[str] = None,
    hyperverge: HypervergeClient = Depends(get_hyperverge_client),
):
    if not transactionId:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "status": "error",
                "message": "transactionId is required as query parameter",
            },
        )

    logger.info(f"Fetching logs for transactionId: {transactionId}")
    try:
        logs = await hyperverge.fetch_logs(transactionId)
    except UpstreamError as e:
        logger.error(f"Error fetching logs: {e.detail}")
        return error_response(e, "Failed to fetch logs", success=False)

    logger.info(f"Logs fetched, application status: {_application_status(logs)}")
    return {"success": True, "transactionId": transactionId, "data": logs}


@router.post("/results")
async def results_webhook(
    request: Request,
    hyperverge: HypervergeClient = Depends(get_hyperverge_client),
):
    """
    Webhook called by HyperVerge once a transaction completes.
    Answers 200 whenever a delivery can't be processed, since anything else
    makes the provider redeliver. Only a payload without a transactionId is
    rejected with 400.
    """
    raw = await read_json_body(request)
    logger.info(f"Webhook received: {json.dumps(raw, indent=2, default=str)}")

    try:
        payload = WebhookPayload.model_validate(raw)
    except ValueError:
        logger.error("Webhook body is not a valid payload")
        return _acknowledge("Webhook body must be a JSON object")

    if not payload.transactionId:
        logger.error("Missing transactionId in webhook payload")
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": "transactionId is required in webhook payload"},
        )

    transaction_id = str(payload.transactionId)
    logger.info(f"Fetching logs for transactionId: {transaction_id}")
    logger.info(f"   Event Type: {payload.eventType}")
    logger.info(f"   Status: {payload.applicationStatus}")
    logger.info(f"   Time: {payload.eventTime}")

    try:
        logs = await hyperverge.fetch_logs(transaction_id)
    except UpstreamError as e:
        logger.error(f"Error processing webhook: {e.detail}")
        return _acknowledge(str(e))

    logger.info(f"Logs fetched, application status: {_application_status(logs)}")
    logger.info(f"Logs API response:\n{json.dumps(logs, indent=2, default=str)}")

    return {"status": "success", "message": "Webhook received and processed"}


@router.get("/outputs")
async def view_outputs(
    transactionId: Optional[str] = None,
    hyperverge: HypervergeClient = Depends(get_hyperverge_client),
):
    if not transactionId:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "status": "error",
                "message": "transactionId is required as query parameter",
            },
        )

    try:
        _, outputs = await _fetch_logs_then_outputs(hyperverge, transactionId)
    except UpstreamError as e:
        return error_response(e, "Failed to fetch outputs", success=False)

    data = {"status": "success", "statusCode": 200}
    # Keys the provider left out stay out of the reply
    for key in ("metadata", "result"):
        if key in outputs:
            data[key] = outputs[key]

    return {"success": True, "transactionId": transactionId, "data": data}


@router.post("/outputs")
async def fetch_outputs(
    request: Request,
    hyperverge: HypervergeClient = Depends(get_hyperverge_client),
):
    """Final KYC outputs for a completed transaction, called by the client after the SDK finishes."""
    raw = await read_json_body(request)
    try:
        transaction_id = OutputsRequest.model_validate(raw).transactionId
        if transaction_id:
            transaction_id = str(transaction_id)
    except ValueError:
        transaction_id = None

    if not transaction_id:
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": "transactionId is required in request body"},
        )

    try:
        logs, outputs = await _fetch_logs_then_outputs(hyperverge, transaction_id)
    except UpstreamError as e:
        return error_response(e, "Failed to fetch outputs")

    return {
        "status": "success",
        "data": {"logs": logs.get("result"), "outputs": outputs.get("result")},
    }


async def _fetch_logs_then_outputs(hyperverge: HypervergeClient, transaction_id: str):
    # Logs must be requested before outputs
    logger.info(f"Fetching outputs for transactionId: {transaction_id}")
    try:
        logger.info("Step 1: Fetching transaction logs...")
        logs = await hyperverge.fetch_logs(transaction_id)
        logger.info("Logs fetched successfully")

        logger.info("Step 2: Fetching outputs...")
        outputs = await hyperverge.fetch_outputs(transaction_id)
    except UpstreamError as e:
        logger.error(f"Error fetching outputs: {e.detail}")
        raise

    logger.info(f"Outputs fetched, status: {_result_field(outputs, 'status')}")
    return logs, outputs


def _result_field(body: dict, key: str):
    result = body.get("result")
    return result.get(key) if isinstance(result, dict) else None


def _application_status(logs: dict):
    return _result_field(logs, "applicationStatus")


def _acknowledge(error: str) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content={
            "status": "acknowledged",
            "message": "Webhook received but processing failed",
            "error": error,
        },
    )


def create_app(settings: Optional[Settings] = None, hyperverge_client: Optional[HypervergeClient] = None) -> FastAPI:
    if settings is None:
        settings = load_settings()

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION)
    app.state.settings = settings
    app.state.hyperverge_client = hyperverge_client or HypervergeClient(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"{settings.PROJECT_NAME} starting up on http://{settings.HOST}:{settings.PORT}")
        logger.info(f"Workflow: {settings.HYPERVERGE_WORKFLOW_ID}, token expiry: {settings.TOKEN_EXPIRY}s")
        for name, route in ENDPOINTS.items():
            logger.info(f"   {route:<32} ({name})")

    return app


def run():
    settings = load_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
