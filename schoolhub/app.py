import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from .config import Settings, load_settings
from .database import Base, build_engine, build_session_factory
from .fixtures import seed_fixtures
from .routes import router
from .session import SessionState


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()

    engine = build_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    session_factory = build_session_factory(engine)

    db: Session = session_factory()
    try:
        seed_fixtures(db, demo_password=settings.demo_password)
    finally:
        db.close()

    app = FastAPI(title="SchoolHub API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.session_state = SessionState()
    app.include_router(router)

    if settings.demo_mode:
        logger.warning("Demo mode is on: unauthenticated API calls act as the default demo user.")
    return app
