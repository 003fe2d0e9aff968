from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder


# PUBLIC_INTERFACE
def error_envelope(error: str, details: Optional[Any] = None) -> Dict[str, Any]:
    """
    Build the failure envelope used by every error response.

    Args:
        error: Human readable message placed under "error".
        details: Optional extra information; omitted from the body when None.

    Returns:
        Dict with keys: success (always False), error and optionally details.
    """
    body: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return body
