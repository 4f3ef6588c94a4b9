from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from coinfolio.api.routes import auth, coins, portfolio, users
from coinfolio.auth import hash_password
from coinfolio.config import Settings
from coinfolio.errors import install_exception_handlers
from coinfolio.models.base import create_engine, create_session_factory, init_db
from coinfolio.models.user import User, UserRole
from coinfolio.services.collections import UserCollection
from coinfolio.utils.logging import configure_logging, get_logger

__version__ = "0.1.0"

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Coinfolio %s (%s)", __version__, app.state.settings.app_env)
    app.state.db_ready = await init_db(app.state.engine)

    if app.state.db_ready and app.state.settings.admin_email and app.state.settings.admin_password:
        try:
            await _seed_admin_user(app)
        except Exception as exc:
            logger.error("Admin user seed FAILED: %s", exc, exc_info=True)

    yield

    await app.state.engine.dispose()


async def _seed_admin_user(app: FastAPI) -> None:
    """Create or reset the bootstrap admin account.

    The password is reset on every startup so the configured credentials
    always work, even if bcrypt rounds changed between deploys.
    """
    settings: Settings = app.state.settings
    email = settings.admin_email.lower().strip()
    hashed = hash_password(settings.admin_password, settings.bcrypt_rounds)

    async with app.state.session_factory() as session:
        users = UserCollection(session)
        existing = await users.find_by_email(email)

        if existing:
            await users.update(existing, {
                "hashed_password": hashed,
                "role": UserRole.ADMIN,
                "is_active": True,
            })
            await session.commit()
            logger.info("Admin password reset: %s", email)
            return

        await users.insert(User(
            email=email,
            username=settings.admin_username,
            hashed_password=hashed,
            full_name="Administrator",
            role=UserRole.ADMIN,
            is_active=True,
            is_verified=True,
        ))
        await session.commit()
        logger.info("Admin user created: %s", email)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application around ``settings`` (read from the environment by default)."""
    settings = settings or Settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Coinfolio",
        description="Crypto portfolio tracker",
        version=__version__,
        debug=settings.app_debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = create_engine(settings.database_url, echo=settings.app_debug)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.db_ready = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(dict.fromkeys([*settings.cors_origins, settings.frontend_url])),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_exception_handlers(app)

    # REST API routes
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(coins.router, prefix="/api/coins", tags=["coins"])
    app.include_router(portfolio.router, prefix="/api/portfolio", tags=["portfolio"])
    app.include_router(users.router, prefix="/api/users", tags=["users"])

    @app.get("/api/health")
    async def health(request: Request):
        return {
            "status": "ok",
            "version": __version__,
            "database": "connected" if request.app.state.db_ready else "unavailable",
        }

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
