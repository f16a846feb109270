import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(name, default).split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite://"
    demo_mode: bool = True
    demo_user_id: str = "user-1"
    demo_password: str = "Demo@1234"
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_exp_minutes: int = 60
    cors_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))


def load_settings(env_file: str | None = None) -> Settings:
    """Build settings from the environment, reading a .env file first when present."""
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    return Settings(
        database_url=os.getenv("SCHOOLHUB_DATABASE_URL", "sqlite://"),
        demo_mode=_env_flag("SCHOOLHUB_DEMO_MODE", "true"),
        demo_user_id=os.getenv("SCHOOLHUB_DEMO_USER_ID", "user-1"),
        demo_password=os.getenv("SCHOOLHUB_DEMO_PASSWORD", "Demo@1234"),
        jwt_secret=os.getenv("SCHOOLHUB_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production")),
        jwt_algorithm=os.getenv("SCHOOLHUB_JWT_ALGORITHM", "HS256"),
        jwt_exp_minutes=int(os.getenv("SCHOOLHUB_JWT_EXP_MINUTES", "60")),
        cors_origins=_env_list("SCHOOLHUB_CORS_ORIGINS", "*"),
    )
