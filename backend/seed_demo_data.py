"""
Safe auto-seeding system for demo data.

This module provides idempotent seeding that:
- Only runs if the database has no tenants yet
- Is controlled by the SEED_DEMO_DATA setting
- Creates the demo-isp tenant with staff, plans, customers and subscriptions
- Leaves invoices to the billing engine
"""
import logging
from datetime import datetime
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_password_hash
from config import settings
from models import (
    Tenant, User, UserRole, UserStatus, Plan, Customer, CustomerStatus,
    Subscription, SubscriptionStatus, AccessType
)
from setting_service import setting_service
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)

DEMO_SLUG = "demo-isp"
DEMO_PASSWORD = "admin123"

STAFF = [
    ("Admin User", "admin@demo-isp.com", UserRole.OWNER),
    ("Manager User", "manager@demo-isp.com", UserRole.MANAGER),
    ("Support Agent", "support@demo-isp.com", UserRole.SUPPORT),
    ("Cashier User", "cashier@demo-isp.com", UserRole.CASHIER),
]

PLANS = [
    {"name": "Basic 25Mbps", "speed_mbps": 25, "price": 29.99, "fup": {"enabled": False}},
    {"name": "Standard 50Mbps", "speed_mbps": 50, "price": 49.99,
     "fup": {"enabled": True, "threshold": 500, "reducedSpeed": 10}},
    {"name": "Premium 100Mbps", "speed_mbps": 100, "price": 79.99, "fup": {"enabled": False}},
    {"name": "Business 200Mbps", "speed_mbps": 200, "price": 149.99, "fup": {"enabled": False}},
]

# (name, phone, email, status, tags, plan index, username, access type, ends_at)
CUSTOMERS = [
    ("John Smith", "+1234567890", "john.smith@email.com", CustomerStatus.ACTIVE, [],
     1, "john_smith", AccessType.PPPOE, datetime(2024, 2, 1)),
    ("Sarah Johnson", "+1234567891", "sarah.j@email.com", CustomerStatus.ACTIVE, [],
     0, "sarah_johnson", AccessType.PPPOE, datetime(2024, 2, 15)),
    ("Mike Davis", "+1234567892", "mike.davis@email.com", CustomerStatus.ACTIVE, [],
     2, "mike_davis", AccessType.GPON, datetime(2024, 2, 10)),
    ("Emily Brown", "+1234567893", "emily.brown@email.com", CustomerStatus.SUSPENDED, [],
     0, "emily_brown", AccessType.PPPOE, datetime(2024, 1, 1)),
    ("Tech Solutions LLC", "+1234567894", "billing@techsolutions.com", CustomerStatus.ACTIVE, ["business", "priority"],
     3, "techsolutions", AccessType.STATIC_IP, datetime(2024, 2, 1)),
]


async def is_database_empty(db: AsyncSession) -> bool:
    """True when no tenant exists yet"""
    result = await db.execute(select(func.count(Tenant.id)))
    return (result.scalar() or 0) == 0


async def seed_demo_tenant_data(db: AsyncSession) -> Tenant:
    """
    Create the demo tenant and its data.
    Safe to run multiple times - returns the existing tenant if present.
    """
    result = await db.execute(select(Tenant).where(Tenant.slug == DEMO_SLUG))
    tenant = result.scalar_one_or_none()
    if tenant:
        logger.info(f"✓ Tenant {DEMO_SLUG} already exists - skipping seed")
        return tenant

    logger.info(f"🌱 Seeding demo data for tenant: {DEMO_SLUG}")

    tenant = Tenant(
        name="Demo ISP Company",
        slug=DEMO_SLUG,
        branding={
            "primaryColor": "#3B82F6",
            "logo": None,
            "companyInfo": {
                "address": "123 Main Street, Tech City, TC 12345",
                "phone": "+1 (555) 123-4567",
                "email": "billing@demo-isp.com",
                "website": "https://demo-isp.com"
            }
        }
    )
    db.add(tenant)
    await db.flush()
    scope = TenantScope(db, tenant.id)

    # 1. Staff
    hashed_password = get_password_hash(DEMO_PASSWORD)
    for name, email, role in STAFF:
        scope.add(User, name=name, email=email, hashed_password=hashed_password, role=role, status=UserStatus.ACTIVE)
    logger.info(f"  ✓ Created {len(STAFF)} staff users (password: {DEMO_PASSWORD})")

    # 2. Settings
    await setting_service.create_defaults(scope, DEMO_SLUG)

    # 3. Plans
    plans = []
    for data in PLANS:
        plans.append(scope.add(Plan, duration_days=30, tax_rate=18.0, is_active=True, **data))
    await db.flush()
    logger.info(f"  ✓ Created {len(plans)} plans")

    # 4. Customers and subscriptions
    for name, phone, email, status, tags, plan_index, username, access_type, ends_at in CUSTOMERS:
        customer = scope.add(
            Customer, name=name, phone=phone, email=email, status=status, tags=tags, documents=[],
            address={"city": "Springfield", "state": "IL", "country": "USA"}
        )
        await db.flush()
        active = status == CustomerStatus.ACTIVE
        scope.add(
            Subscription,
            customer_id=customer.id,
            plan_id=plans[plan_index].id,
            username=username,
            access_type=access_type,
            status=SubscriptionStatus.ACTIVE if active else SubscriptionStatus.SUSPENDED,
            auto_renew=active,
            started_at=datetime(ends_at.year, ends_at.month, 1) if ends_at.month > 1 else datetime(ends_at.year - 1, 12, 1),
            ends_at=ends_at
        )
        logger.info(f"  ✓ Created customer: {name}")

    await db.commit()
    logger.info(f"✅ Demo data seeded successfully for {tenant.name}")
    return tenant


async def seed_demo_data_on_startup(db: AsyncSession):
    """
    Main entry point for auto-seeding demo data on app startup.

    Behavior:
    - Controlled by the SEED_DEMO_DATA setting
    - Only runs if the database is empty
    - Idempotent - safe to call multiple times
    """
    if not settings.SEED_DEMO_DATA:
        logger.info("Demo data seeding disabled via SEED_DEMO_DATA=false")
        return

    if not await is_database_empty(db):
        logger.info("Database contains tenant data - skipping demo data seed")
        return

    logger.info("=" * 60)
    logger.info("Database is empty - seeding demo data...")
    logger.info("=" * 60)

    try:
        await seed_demo_tenant_data(db)
        logger.info("=" * 60)
        logger.info("✅ Demo data seeding completed successfully!")
        logger.info("=" * 60)
    except Exception as e:
        logger.error(f"❌ Error seeding demo data: {e}")
        await db.rollback()
        raise
