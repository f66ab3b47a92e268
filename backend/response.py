from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def ok(
    data: Any = None,
    message: str = "OK",
    *,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    """
    Standard success envelope:
    {
      "success": true,
      "message": "...",
      "data": ...,
      "meta": {...} (optional)
    }
    """
    payload: Dict[str, Any] = {"success": True, "message": message, "data": data}
    if meta is not None:
        payload["meta"] = meta
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def err(message: str, *, status_code: int = 400, errors: Any = None) -> JSONResponse:
    payload = {"success": False, "message": message, "errors": errors}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))
