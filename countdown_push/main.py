import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from countdown_push.api import root_router
from countdown_push.common.exceptions import VapidKeysMissingError
from countdown_push.configs import configs
from countdown_push.core.logger import LOGGING_CONFIG
from countdown_push.core.notification.dispatch import DispatchClient
from countdown_push.core.notification.vapid import ensure_vapid_keys
from countdown_push.core.supervisor import SchedulerSupervisor
from countdown_push.repos.subscription import SubscriptionStore
from countdown_push.tasks.scheduler import JobScheduler

logger = logging.getLogger(__name__)


def build_supervisor() -> SchedulerSupervisor:
    """Wire store, dispatcher and scheduler from the loaded configuration."""
    store = SubscriptionStore(configs.Store.Path, defaults=configs.Schedule)
    dispatcher = DispatchClient(configs.Push)
    scheduler = JobScheduler(
        store,
        dispatcher,
        schedule_config=configs.Schedule,
        push_config=configs.Push,
    )
    return SchedulerSupervisor(store, scheduler)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Signing keys are the one hard requirement; without them nothing can be sent
    if not ensure_vapid_keys(configs.Push):
        raise VapidKeysMissingError(
            "VAPID keys must be set (COUNTDOWN_Push_VapidPublicKey / COUNTDOWN_Push_VapidPrivateKey). "
            "Generate a pair with `countdown-push-vapid`."
        )

    supervisor = build_supervisor()
    app.state.supervisor = supervisor

    supervisor.bootstrap()
    supervisor.scheduler.start()
    logger.info(f"Event: {configs.Schedule.EventName}, default timezone: {configs.Schedule.DefaultTimezone}")

    try:
        yield
    finally:
        supervisor.scheduler.shutdown()


app = FastAPI(
    title="Countdown Push Service",
    description="Web Push launch alerts and daily countdown reminders",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(root_router)


def run() -> None:
    uvicorn.run(
        "countdown_push.main:app",
        host=configs.Host,
        port=configs.Port,
        log_config=LOGGING_CONFIG,
        reload=configs.Debug,
        reload_excludes=["tests"],
    )


if __name__ == "__main__":
    run()
