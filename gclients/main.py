import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gclients import config
from gclients.auth.auth_router import router as auth_router
from gclients.catalog.catalog_router import router as catalog_router
from gclients.checkout.checkout_router import router as checkout_router
from gclients.dashboard.dashboard_router import router as dashboard_router
from gclients.database import create_indexes, db
from gclients.enrollments.enrollment_router import router as enrollment_router
from gclients.errors import setup_exception_handlers
from gclients.invoices.invoice_router import router as invoice_router
from gclients.learners.learner_router import router as learner_router
from gclients.notifications.mailer import Mailer
from gclients.reconciler import reconciler_worker

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="G-Clients Learning Platform API")
app.state.mailer = Mailer()
app.state.reconciler = None

setup_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    await create_indexes(db)
    if config.OUTBOX_RETRY_INTERVAL_SECONDS > 0:
        app.state.reconciler = asyncio.create_task(
            reconciler_worker(db, app.state.mailer, config.OUTBOX_RETRY_INTERVAL_SECONDS)
        )
        logger.info("Reconciler running every %ss", config.OUTBOX_RETRY_INTERVAL_SECONDS)


@app.on_event("shutdown")
async def shutdown_event():
    task = app.state.reconciler
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# ==================== ROUTER REGISTRATION ====================
app.include_router(auth_router)
app.include_router(catalog_router)
app.include_router(checkout_router)
app.include_router(enrollment_router)
app.include_router(invoice_router)
app.include_router(learner_router)
app.include_router(dashboard_router)
# ============================================================


@app.get("/health")
def health():
    return {"status": "ok"}
