"""
Uniform result envelope for model-callable tools.

Tools return failures as data, `{success: false, data: null, error: {...}}`,
so one bad tool call degrades the answer instead of aborting the stream.
"""

import json
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from economist_ai.exception import ErrorType


def create_success_response(data: Any) -> dict:
    return {"success": True, "data": data, "error": None}


def create_error_response(
    message: str,
    type: str = ErrorType.UNKNOWN_ERROR,
    details: str = "An unexpected error occurred",
    fallback: str = "Please try again later",
) -> dict:
    return {
        "success": False,
        "data": None,
        "error": {
            "message": message,
            "type": type,
            "details": details,
            "fallback": fallback,
        },
    }


def validation_error_response(e: PydanticValidationError, fallback: str) -> dict:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
    )
    return create_error_response("Invalid tool input", ErrorType.VALIDATION_ERROR, problems, fallback)


def handle_tool_validation_error(e: PydanticValidationError) -> str:
    # StructuredTool hook: schema violations come back as a JSON error envelope
    return json.dumps(validation_error_response(e, "Please correct the tool arguments and retry."))


class CommonErrors:
    @staticmethod
    def api_key_missing(service: str, env_var: str) -> dict:
        return create_error_response(
            f"{service} API key is not configured",
            ErrorType.CONFIG_ERROR,
            f"The {env_var} environment variable is missing or empty.",
            "Please configure the API key in your environment variables.",
        )

    @staticmethod
    def invalid_api_key(service: str, env_var: str) -> dict:
        return create_error_response(
            f"Invalid {service} API key",
            ErrorType.AUTH_ERROR,
            "The provided API key is invalid or expired.",
            f"Please check your {env_var} environment variable.",
        )

    @staticmethod
    def rate_limit_exceeded(service: str) -> dict:
        return create_error_response(
            f"{service} API rate limit exceeded",
            ErrorType.RATE_LIMIT,
            "Too many requests have been made to the API.",
            "Please wait a moment before making another request.",
        )

    @staticmethod
    def network_error(service: str) -> dict:
        return create_error_response(
            f"Failed to connect to {service}",
            ErrorType.FETCH_ERROR,
            "Network error occurred while making the API request.",
            "Please check your internet connection and try again.",
        )
