"""
Helpers shared by the development server routes.

Every failure leaves the server as `{"error": {"message": ...}}`, the body shape the
client unwraps first.
"""
from fastapi import HTTPException
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse


def error_body(message: str) -> dict:
    return {"error": {"message": message}}


def not_found(kind: str, item_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{kind} {item_id} not found")


async def http_exception_handler(request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(error_body(str(exc.detail)), status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request, exc) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()))
    message = f"Invalid request: {where} {first.get('msg', '')}".strip()
    return JSONResponse(error_body(message), status_code=400)
