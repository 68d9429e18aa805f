"""HTTP middleware: request ids, CORS on every response, last-resort 500s."""
import logging
import traceback
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
}


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Ensures every request has a request-id.
    - Accepts the incoming header or generates one
    - Stores it in request.state.request_id
    - Returns it in the response header
    """

    def __init__(self, app, header: str = "X-Request-Id"):
        super().__init__(app)
        self.header = header

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(self.header) or str(uuid.uuid4())
        request.state.request_id = rid
        response: Response = await call_next(request)
        response.headers[self.header] = rid
        return response


class CorsEnvelopeMiddleware(BaseHTTPMiddleware):
    """
    Browser clients call the function endpoints cross-origin.

    - OPTIONS short-circuits with 200 "ok"
    - Every response, errors included, gets the CORS headers
    - Anything that escaped the exception handlers becomes a 500 JSON body
    """

    def __init__(self, app, expose_details: bool = True):
        super().__init__(app)
        self.expose_details = expose_details

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return PlainTextResponse("ok", status_code=200, headers=CORS_HEADERS)

        try:
            response: Response = await call_next(request)
        except Exception as e:
            logger.exception("unhandled error", extra={"path": request.url.path})
            body = {"error": str(e) or e.__class__.__name__}
            if self.expose_details:
                body["details"] = traceback.format_exc()
            response = JSONResponse(body, status_code=500)

        response.headers.update(CORS_HEADERS)
        return response
