"""COD Discrepancy Reconciler - Main Application."""

from fastapi import FastAPI

from app.api.routes import discrepancies
from app.core.config import settings
from app.core.database import Base, engine
from app.core.logging import setup_logging
from app import models  # noqa: F401  (register snapshot tables)

# Configure logging before anything else
logger = setup_logging(settings.log_level)

# Create snapshot tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Discrepancy Workflow",
        "description": (
            "Report cash-on-delivery payment discrepancies, run customer "
            "verifications, resolve or escalate cases, correct delivery-agent "
            "ledgers and read the running analytics."
        ),
    },
]


app = FastAPI(
    title="COD Discrepancy Reconciler",
    description=(
        "## Cash-on-Delivery Discrepancy Workflow API\n\n"
        "Tracks mismatches between what a delivery agent collected and what "
        "an order owed, from detection through customer verification to "
        "resolution, escalation and agent-ledger correction.\n\n"
        "### Case lifecycle\n"
        "- `detected` - mismatch recorded, customer not yet contacted\n"
        "- `pending_verification` - customer asked to confirm the amount\n"
        "- `escalated` - handed to management (can still be resolved)\n"
        "- `resolved` - closed\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Settle a delivery where the agent came back 150 short\n"
        "curl -X POST /api/v1/discrepancy-workflow/settlements "
        '-H "Content-Type: application/json" '
        '-d \'{"order_id":"ORD-1","driver_id":"driver-7",'
        '"expected_amount":650,"collected_amount":500}\'\n\n'
        "# 2. Customer confirms\n"
        "curl -X POST /api/v1/discrepancy-workflow/verifications/VER-000001/response "
        '-H "Content-Type: application/json" -d \'{"status":"confirmed"}\'\n\n'
        "# 3. Check the counters\n"
        "curl /api/v1/discrepancy-workflow/analytics\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(
    discrepancies.router,
    prefix="/api/v1/discrepancy-workflow",
    tags=["Discrepancy Workflow"],
)

logger.info("COD Discrepancy Reconciler API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    Useful for load balancers and monitoring systems.
    """
    return {"status": "healthy", "service": "cod-discrepancy-reconciler"}
