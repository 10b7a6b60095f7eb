# runtime settings loaded from the environment (and a local .env file)
import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# monthly credit baselines
OMNITOKENS_BASELINE = 10
OMNICOINS_BASELINE = 45

DEFAULT_JWT_SECRET = "dev-secret-change-me"
DEFAULT_DATABASE_PATH = "data/slider_omni.db"

MIN_SLIDES = 3
MAX_SLIDES = 15
DEFAULT_TEMPLATE_ID = "dark-premium"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


# application settings
@dataclass
class Settings:
    jwt_secret: str = DEFAULT_JWT_SECRET
    token_ttl_seconds: int = 3600
    storage: str = "sqlite"  # sqlite | memory
    database_path: str = DEFAULT_DATABASE_PATH
    llm_timeout: int = 120
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    init_admin_user: Optional[str] = None
    init_admin_pass: Optional[str] = None
    init_admin_email: Optional[str] = None
    init_admin_sudo: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from SLIDER_* environment variables"""
        load_dotenv()

        origins = os.getenv("SLIDER_CORS_ORIGINS", "*")
        settings = cls(
            jwt_secret=os.getenv("SLIDER_JWT_SECRET", DEFAULT_JWT_SECRET),
            token_ttl_seconds=_env_int("SLIDER_TOKEN_TTL_SECONDS", 3600),
            storage=os.getenv("SLIDER_STORAGE", "sqlite").strip().lower(),
            database_path=os.getenv("SLIDER_DATABASE_PATH", DEFAULT_DATABASE_PATH),
            llm_timeout=_env_int("SLIDER_LLM_TIMEOUT", 120),
            log_level=os.getenv("SLIDER_LOG_LEVEL", "INFO").upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            init_admin_user=os.getenv("SLIDER_INIT_ADMIN_USER") or None,
            init_admin_pass=os.getenv("SLIDER_INIT_ADMIN_PASS") or None,
            init_admin_email=os.getenv("SLIDER_INIT_ADMIN_EMAIL") or None,
            init_admin_sudo=_env_bool("SLIDER_INIT_ADMIN_SUDO"),
        )

        if settings.storage not in ("sqlite", "memory"):
            logger.warning(f"Unknown SLIDER_STORAGE={settings.storage!r}, falling back to sqlite")
            settings.storage = "sqlite"

        if settings.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("SLIDER_JWT_SECRET is not set; using the development secret")

        return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings"""
    return Settings.from_env()
