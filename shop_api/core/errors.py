# shop_api/core/errors.py
from http import HTTPStatus
from typing import Any, Dict, List

from fastapi import HTTPException


def api_error(status_code: int, error: str, message: str, headers: Dict[str, str] = None, **extra: Any) -> HTTPException:
    """HTTPException whose detail is rendered as the API error envelope by the app handlers."""
    detail = {"error": error, "message": message}
    detail.update(extra)
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def error_body(status_code: int, detail: Any) -> Dict[str, Any]:
    """Build ``{"success": false, "error": ..., "message": ...}`` from an HTTPException detail."""
    if isinstance(detail, dict) and "error" in detail:
        return {"success": False, **detail}
    try:
        title = HTTPStatus(status_code).phrase
    except ValueError:
        title = "Error"
    return {"success": False, "error": title, "message": str(detail)}


def validation_error_body(errors: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Summarise pydantic errors; a body that only lacks required fields gets the short form."""
    cleaned = []
    missing = []
    for err in errors:
        location = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = ".".join(location) or "body"
        if err.get("type") == "missing":
            missing.append(field)
        cleaned.append({"field": field, "message": err.get("msg", "Invalid value")})

    if missing and len(missing) == len(cleaned):
        return {
            "success": False,
            "error": "Missing required fields",
            "message": f"Please provide: {', '.join(missing)}",
            "errors": cleaned,
        }
    first = cleaned[0] if cleaned else {"field": "body", "message": "Invalid request"}
    return {
        "success": False,
        "error": "Validation failed",
        "message": f"{first['field']}: {first['message']}",
        "errors": cleaned,
    }
