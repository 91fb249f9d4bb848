import logging

from sanic import Sanic, response, Request
from gidgethub import ValidationFailure, sansio
from sanic.log import logger
from prometheus_client import CONTENT_TYPE_LATEST, core
from prometheus_client.exposition import generate_latest

from warden import config
from warden.context import GovernanceContext
from warden.dispatcher import EventDispatcher
from warden.events import (
    InvalidEventPayload,
    InvariantViolation,
    UnsupportedEvent,
    WebhookEnvelope,
)
from warden.governance.synchronizer import StateSynchronizer
from warden.logger import get_log_handlers
from warden.metric import (
    error_counter,
    request_counter,
    webhook_counter,
    webhook_skipped_counter,
)
from warden.reconcile import ReconciliationLoop


logging.basicConfig(
    format="%(asctime)s %(name)s %(levelname)s - %(message)s", level=logging.INFO
)


async def process_github_event(app, event) -> None:
    action = event.data.get("action") or ""
    webhook_counter.labels(event=event.event, action=action).inc()

    envelope = WebhookEnvelope(
        event_name=event.event,
        payload=event.data,
        delivery_id=getattr(event, "delivery_id", None),
    )

    try:
        result = await app.ctx.dispatcher.dispatch(envelope)
    except UnsupportedEvent:
        logger.debug("Ignoring unsupported event=%s", event.event)
        webhook_skipped_counter.labels(event=event.event, reason="unsupported").inc()
        return
    except InvalidEventPayload:
        error_counter.labels(context="event_parse").inc()
        logger.error(
            "Invalid payload event=%s delivery=%s",
            event.event,
            envelope.delivery_id,
            exc_info=True,
        )
        return
    except InvariantViolation:
        error_counter.labels(context="event_invariant").inc()
        logger.error(
            "Invariant violated event=%s action=%s delivery=%s",
            event.event,
            action,
            envelope.delivery_id,
            exc_info=True,
        )
        return
    except Exception:  # noqa: BLE001
        error_counter.labels(context="event_dispatch").inc()
        logger.error("Exception raised when dispatching event", exc_info=True)
        return

    logger.debug(
        "Handled event=%s action=%s result=%s", event.event, action, result.result
    )


def create_app():
    app = Sanic("merge-warden")
    app.update_config(config)

    logging.getLogger().setLevel(config.OVERRIDE_LOGGING)
    get_log_handlers()

    @app.listener("before_server_start")
    async def init(app, loop):
        context = await GovernanceContext.create(app.config)
        synchronizer = StateSynchronizer(config=app.config, rosters=context.rosters)
        app.ctx.context = context
        app.ctx.synchronizer = synchronizer
        app.ctx.dispatcher = EventDispatcher(
            synchronizer=synchronizer,
            api_factory=context.api_for_installation,
        )
        app.ctx.reconciler = ReconciliationLoop(
            context=context, synchronizer=synchronizer
        )
        if app.config.RECONCILE_ENABLED:
            app.ctx.reconciler.start(app.config.RECONCILE_INTERVAL)

    @app.listener("before_server_stop")
    async def shutdown(app, loop):
        await app.ctx.reconciler.stop()
        await app.ctx.context.close()

    @app.on_request
    async def on_request(request: Request):
        if request.path == "/metrics":
            return
        request_counter.labels(path=request.path).inc()

    @app.get("/")
    async def index(request):
        return response.json(
            {
                "app": app.name,
                "bot": app.config.BOT_USER_NAME,
                "dry_run": app.config.DRY_RUN,
                "reconcile": app.ctx.reconciler.running,
            }
        )

    @app.get("/status")
    async def status(request):
        logger.debug("status check")
        return response.text("ok")

    @app.route("/webhook", methods=["POST"])
    async def github(request):
        logger.debug("Webhook received")

        try:
            event = sansio.Event.from_http(
                request.headers, request.body, secret=app.config.GITHUB_WEBHOOK_SECRET
            )
        except ValidationFailure:
            error_counter.labels(context="webhook_signature").inc()
            logger.warning("Webhook signature validation failed", exc_info=True)
            return response.empty(status=401)

        await process_github_event(app, event)
        return response.empty(200)

    @app.get("/metrics")
    async def metrics(request):
        data = generate_latest(core.REGISTRY)
        return response.raw(data, content_type=CONTENT_TYPE_LATEST)

    return app
