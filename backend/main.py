from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import settings
from database import init_db, async_session_maker
from errors import register_exception_handlers
from auth_api import router as auth_router
from billing_api import router as billing_router
from customer_api import router as customer_router
from invoice_api import router as invoice_router
from payment_api import router as payment_router
from plan_api import router as plan_router
from portal_api import router as portal_router
from report_api import router as report_router, dashboard_router
from search_api import router as search_router
from setting_api import router as setting_router
from subscription_api import router as subscription_router
from ticket_api import router as ticket_router
from usage_api import router as usage_router
from user_api import router as user_router

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

# Setup logging
logger = logging.getLogger(__name__)

# Strip whitespace from each origin to prevent configuration errors
CORS_ORIGINS = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
    max_age=3600,  # Cache preflight responses for 1 hour
)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(setting_router)
app.include_router(customer_router)
app.include_router(plan_router)
app.include_router(subscription_router)
app.include_router(billing_router)
app.include_router(invoice_router)
app.include_router(payment_router)
app.include_router(ticket_router)
app.include_router(usage_router)
app.include_router(report_router)
app.include_router(dashboard_router)
app.include_router(search_router)
app.include_router(portal_router)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    logger.info("=" * 60)
    logger.info("Starting application initialization...")
    logger.info("=" * 60)

    try:
        await init_db()
        logger.info("Database initialization successful!")
    except ConnectionRefusedError as e:
        logger.error("=" * 60)
        logger.error("CRITICAL: Database connection refused!")
        logger.error(f"Error: {e}")
        logger.error("Check DATABASE_URL and that the database server is reachable")
        logger.error("=" * 60)
        raise
    except Exception as e:
        logger.error("=" * 60)
        logger.error(f"CRITICAL: Application startup failed: {e}")
        logger.error("=" * 60)
        raise

    async with async_session_maker() as db:
        from seed_demo_data import seed_demo_data_on_startup
        await seed_demo_data_on_startup(db)

    if settings.BILLING_SCHEDULER_ENABLED:
        try:
            from billing_scheduler import start_billing_scheduler
            start_billing_scheduler()
            logger.info("✅ Billing scheduler started successfully")
        except Exception as e:
            # Don't fail startup if scheduler fails
            logger.error(f"⚠️ Failed to start billing scheduler: {e}")


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers"""
    return {"status": "healthy", "service": "api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
