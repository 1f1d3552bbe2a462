import hashlib
import hmac
import json
import logging
from typing import Optional

from aiohttp import web

from gatekeeper.application.event_dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


class WebhookHandler:
    """
    aiohttp endpoint receiving GitHub webhook deliveries.
    Each delivery is dispatched on its own request task, so slow events never block others.
    """

    def __init__(self, dispatcher: EventDispatcher, secret: Optional[str] = None):
        self.dispatcher = dispatcher
        self.secret = secret

    def _signature_matches(self, body: bytes, signature: Optional[str]) -> bool:
        if not self.secret:
            return True
        if not signature or not signature.startswith("sha256="):
            return False
        expected = hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature[len("sha256="):])

    async def handle_event(self, request: web.Request) -> web.Response:
        body = await request.read()
        if not self._signature_matches(body, request.headers.get("X-Hub-Signature-256")):
            logger.warning("Rejected webhook delivery with a bad signature")
            return web.json_response({"error": "bad signature"}, status=401)

        event_type = request.headers.get("X-GitHub-Event")
        if not event_type:
            return web.json_response({"error": "missing X-GitHub-Event header"}, status=400)

        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            return web.json_response({"error": "payload is not JSON"}, status=400)
        if not isinstance(payload, dict):
            return web.json_response({"error": "payload is not a JSON object"}, status=400)

        delivery = request.headers.get("X-GitHub-Delivery", "-")
        logger.info(f"Received '{event_type}' event (delivery {delivery})")
        try:
            result = await self.dispatcher.dispatch(event_type, payload)
        except Exception:
            logger.exception(f"Delivery {delivery} of '{event_type}' failed")
            return web.json_response(
                {"event": event_type, "state": "errored", "error": "event handling failed"}, status=500
            )

        return web.json_response(result.model_dump(mode="json", exclude={"outcome"}))

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "repository": str(self.dispatcher.repo_client)})


def create_app(dispatcher: EventDispatcher, secret: Optional[str] = None) -> web.Application:
    handler = WebhookHandler(dispatcher, secret)
    app = web.Application()
    app.router.add_post("/webhook", handler.handle_event)
    app.router.add_get("/health", handler.health)
    return app
