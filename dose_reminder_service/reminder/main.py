from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI

from reminder.api.routes_doses import router as doses_router
from reminder.api.routes_schedules import router as schedules_router
from reminder.core.logging_config import configure_logging
from reminder.services.container import ReminderServices, build_services

def create_app(services: Optional[ReminderServices] = None, run_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            configure_logging()
            app.state.services = build_services()
        scheduler = app.state.services.scheduler
        if run_scheduler:
            scheduler.start()
        try:
            yield
        finally:
            if run_scheduler:
                scheduler.stop()

    app = FastAPI(title="Dose Reminder Service", version="1.0", lifespan=lifespan)
    app.state.services = services

    app.include_router(schedules_router)
    app.include_router(doses_router)

    @app.get("/health")
    def health():
        svc = app.state.services
        return {"ok": True, "scheduler_running": bool(svc and svc.scheduler.running)}

    @app.get("/")
    def root():
        return {"ok": True, "service": "Dose Reminder Service"}

    return app

app = create_app()
