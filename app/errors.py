"""
Domain errors and their HTTP rendering.

Every error a service can raise derives from ``ConduitError`` and carries
the status code and the field-keyed message mapping that the client sees::

    ConduitError
       ├── ValidationFailed   (422)  missing / malformed input
       │      ├── InvalidCredentials   email or password rejected
       │      ├── Conflict             username / email / slug taken
       │      └── InvalidOperation     e.g. following yourself
       ├── Unauthenticated    (401)  missing or invalid bearer token
       ├── Forbidden          (403)  not the owner of the resource
       └── NotFound           (404)  unknown slug / username / comment

Services raise these at the point of detection; nothing in the core
catches them.  ``setup_exception_handlers`` turns them into responses of
the form ``{"errors": {"<field>": ["<message>", ...]}}``.
"""
import logging

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

ErrorMap = dict[str, list[str]]


class ConduitError(Exception):
    status_code: int = 500

    def __init__(self, errors: ErrorMap | None = None) -> None:
        self.errors: ErrorMap = errors or {}
        super().__init__(self.errors)

    def to_dict(self) -> dict:
        return {"errors": self.errors}


class ValidationFailed(ConduitError):
    status_code = 422


class InvalidCredentials(ValidationFailed):
    def __init__(self) -> None:
        super().__init__({"email or password": ["is invalid"]})


class Conflict(ValidationFailed):
    def __init__(self, *fields: str) -> None:
        super().__init__({field: ["has already been taken"] for field in fields})


class InvalidOperation(ValidationFailed):
    def __init__(self, field: str, message: str) -> None:
        super().__init__({field: [message]})


class Unauthenticated(ConduitError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__()


class Forbidden(ConduitError):
    status_code = 403

    def __init__(self, resource: str) -> None:
        super().__init__({resource: ["forbidden"]})


class NotFound(ConduitError):
    status_code = 404

    def __init__(self, resource: str) -> None:
        super().__init__({resource: ["not found"]})


# ---------------------------------------------------------------------------
# Transport mapping
# ---------------------------------------------------------------------------

def _field_name(loc: tuple) -> str:
    """
    Reduce a pydantic error location to the client-facing field name.

    ``("body", "user", "email")`` becomes ``"email"``; a missing envelope
    (``("body", "user")``) is reported under the envelope key itself.
    """
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    if not parts:
        return "body"
    if len(parts) >= 2 and not parts[1].isdigit():
        return parts[1]
    return parts[0]


def request_errors_to_map(errors) -> ErrorMap:
    result: ErrorMap = {}
    for err in errors:
        field = _field_name(tuple(err.get("loc", ())))
        if err.get("type") == "missing":
            message = "can't be blank"
        else:
            message = err.get("msg", "is invalid")
        messages = result.setdefault(field, [])
        if message not in messages:
            messages.append(message)
    return result


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers that render every error kind uniformly."""

    @app.exception_handler(ConduitError)
    async def conduit_error_handler(request: Request, exc: ConduitError) -> Response:
        logger.warning(
            "%s %s -> %d %s",
            request.method, request.url.path, exc.status_code, type(exc).__name__,
        )
        if isinstance(exc, Unauthenticated):
            return Response(status_code=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = request_errors_to_map(exc.errors())
        logger.warning("%s %s -> 422 %s", request.method, request.url.path, errors)
        return JSONResponse(status_code=422, content={"errors": errors})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500, content={"errors": {"server": ["internal error"]}}
        )
