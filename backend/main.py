from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum
from fastapi.responses import HTMLResponse
from fastapi import Request, HTTPException, Depends
from config import close_store, ENVIRONMENT, IS_PRODUCTION, DEMO_MODE, LOG_LEVEL
from routers.auth.helpers import auth_helpers
from routers.users.helpers import UserHelpers, get_user_helpers
from routers.users.schemas import UserRoleUpdateRequest, UserRoleUpdateResponse
from utils.errors import MarketplaceError
from utils.logging_config import setup_logging
import logging

from routers.auth.auth import router as auth_router
from routers.users.users import router as users_router
from routers.groups.groups import router as groups_router
from routers.orders.orders import router as orders_router
from routers.surplus.surplus import router as surplus_router
from routers.notifications.notifications import router as notifications_router
from routers.analytics.analytics import router as analytics_router

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if DEMO_MODE and not IS_PRODUCTION:
        logger.warning("DEMO_MODE is on: data lives in process memory and is lost on restart")
    yield
    await close_store()


app = FastAPI(
    title="VendorConnect API",
    description="Group buying, order tracking and surplus exchange for street food vendors and their suppliers.",
    version="1.0.0",
    root_path="/Prod" if IS_PRODUCTION else "",
    docs_url="/apidocs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    servers=[
        {"url": "https://your-aws-api.execute-api.region.amazonaws.com/Prod", "description": "Production Server"},
        {"url": "http://localhost:8000", "description": "Local Development Server"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(groups_router)
app.include_router(orders_router)
app.include_router(surplus_router)
app.include_router(notifications_router)
app.include_router(analytics_router)

# =================
# TEMPORARY DEVELOPMENT ROUTES (REMOVE IN PRODUCTION)
# =================

@app.put("/temp/users/{user_id}/change-role", response_model=UserRoleUpdateResponse)
async def temp_change_user_role(
    user_id: str,
    role_update: UserRoleUpdateRequest,
    user_helpers: UserHelpers = Depends(get_user_helpers)
):
    """
    TEMPORARY ROUTE - Change a user's role in the profile document and in
    Supabase user metadata, so the next issued JWT carries it.
    Not available when ENVIRONMENT=prod.
    """
    if ENVIRONMENT == "prod":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This endpoint is not available in production"
        )

    try:
        old_role = await user_helpers.set_role(user_id, role_update.new_role)
        supabase_updated = auth_helpers.set_user_metadata(user_id, role_update.new_role)

        return UserRoleUpdateResponse(
            success=True,
            message=f"Successfully changed role from {old_role} to {role_update.new_role}",
            user_id=user_id,
            new_role=role_update.new_role,
            old_role=old_role or "",
            updated_in_supabase=supabase_updated
        )

    except MarketplaceError as e:
        raise e.to_http_exception()


@app.get("/docs", include_in_schema=False)
async def api_documentation(request: Request):
    openapi_url = "/Prod/openapi.json" if IS_PRODUCTION else "/openapi.json"

    return HTMLResponse(
        f"""
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1, shrink-to-fit=no">
    <title>VendorConnect API DOCS</title>

    <script src="https://unpkg.com/@stoplight/elements/web-components.min.js"></script>
    <link rel="stylesheet" href="https://unpkg.com/@stoplight/elements/styles.min.css">
  </head>
  <body>

    <elements-api
      apiDescriptionUrl="{openapi_url}"
      router="hash"
      theme="dark"
    />

  </body>
</html>"""
    )


@app.get("/health")
def health():
    return {"status": "ok", "environment": ENVIRONMENT, "demo_mode": DEMO_MODE and not IS_PRODUCTION}


API_AREAS = [
    ("Buying groups", "/groups"),
    ("Orders", "/orders"),
    ("Surplus exchange", "/surplus"),
    ("Notifications", "/notifications"),
    ("Dashboards", "/analytics/dashboard"),
]


@app.get("/", response_class=HTMLResponse)
def home():
    """Landing page: API areas and documentation links"""
    areas = "".join(f"<li>{label} <code>{path}</code></li>" for label, path in API_AREAS)
    return f"""
    <html>
      <head><title>VendorConnect API</title></head>
      <body style="font-family: sans-serif; margin: 32px;">
        <h1>VendorConnect API</h1>
        <p>Group buying, order tracking and surplus exchange for street food vendors.</p>
        <h3>Areas</h3>
        <ul>{areas}</ul>
        <h3>Documentation</h3>
        <p><a href="/docs">Stoplight</a> | <a href="/apidocs">Swagger</a> | <a href="/redoc">ReDoc</a> | <a href="/openapi.json">OpenAPI JSON</a></p>
      </body>
    </html>
    """


handler = Mangum(app)
