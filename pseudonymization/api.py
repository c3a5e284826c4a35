# pseudonymization/api.py

"""HTTP surface for the text-improvement and pseudonymization workflow."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pseudonymization.core.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    InputValidationError,
    PseudonymizationError,
)
from pseudonymization.logging_config import configure_logging
from pseudonymization.service.config import settings
from pseudonymization.service.pipeline import WorkflowService, get_workflow_service

logger = logging.getLogger(__name__)

configure_logging(settings.log_level)

app = FastAPI(title="HOCR Pseudonymization Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=86400,
)


class TextRequest(BaseModel):
    # Type checks happen in the validators so that bad input maps to 400.
    text: Any = None
    prompt: Optional[str] = None


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(message: str, status_code: int, /, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error("Invalid request body", 400)


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError):
    return _error(str(exc), 400)


@app.exception_handler(ConfigurationError)
async def configuration_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error", extra={"path": request.url.path})
    return _error(str(exc), 500)


@app.exception_handler(ExternalServiceError)
async def external_service_handler(request: Request, exc: ExternalServiceError):
    logger.error(
        "External service failure",
        extra={"path": request.url.path, "service": exc.service, "status_code": exc.status_code},
    )
    return _error("External service error", 502, message=str(exc), service=exc.service)


@app.exception_handler(PseudonymizationError)
async def pipeline_error_handler(request: Request, exc: PseudonymizationError):
    logger.error("Unhandled workflow error", extra={"path": request.url.path})
    return _error("Internal server error", 500, message=str(exc))


@app.post("/improve")
def improve(body: TextRequest, service: WorkflowService = Depends(get_workflow_service)):
    result = service.improve(body.text, body.prompt)
    return {
        "success": True,
        "originalText": result.original_text,
        "improvedText": result.improved_text,
        "prompt": result.prompt,
        "timestamp": _timestamp(),
    }


@app.post("/hocr")
def hocr(body: TextRequest, service: WorkflowService = Depends(get_workflow_service)):
    result = service.pseudonymize(body.text)
    return {
        "success": True,
        "originalText": result.original_text,
        "entityMappings": result.entity_mappings,
        "pseudonymizedText": result.pseudonymized_text,
        "annotatedText": result.annotated_text,
        "source": result.source,
        "usedFallback": result.used_fallback,
        "warnings": result.warnings,
        "timestamp": _timestamp(),
    }


@app.post("/workflow")
def workflow(body: TextRequest, service: WorkflowService = Depends(get_workflow_service)):
    result = service.run(body.text, body.prompt)
    return {
        "success": True,
        "originalText": result.original_text,
        "entityMappings": result.entity_mappings,
        "pseudonymizedText": result.pseudonymized_text,
        "improvedText": result.improved_text,
        "finalText": result.final_text,
        "usedFallback": result.used_fallback,
        "warnings": result.warnings,
        "timestamp": _timestamp(),
    }
