# wiring: builds every service from settings, for the api and the cli
import logging
from dataclasses import dataclass
from typing import Optional

from .auth import AuthService, SessionTokens
from .config import Settings, get_settings
from .content_generator import ContentGenerator
from .credit_ledger import CreditLedger
from .database import Database
from .llm_provider import (
    InMemoryProviderRepository, ProviderResolver, SQLiteProviderRepository
)
from .orchestrator import CorrectionService, GenerationOrchestrator
from .slide_designer import SlideDesigner
from .presentation_store import (
    InMemoryPresentationRepository, PresentationStore, SQLitePresentationRepository
)
from .users import InMemoryUserRepository, SQLiteUserRepository

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    auth: AuthService
    ledger: CreditLedger
    resolver: ProviderResolver
    store: PresentationStore
    orchestrator: GenerationOrchestrator
    corrections: CorrectionService
    database: Optional[Database] = None

    def initialize(self):
        """Create storage and the configured initial admin"""
        if self.database is not None:
            self.database.initialize()
        self.auth.bootstrap_admin(self.settings)

    def close(self):
        """Release the provider connection pool"""
        self.resolver.close()


def build_services(settings: Optional[Settings] = None) -> Services:
    """Assemble the service graph on sqlite or process-local storage"""
    settings = settings or get_settings()

    database = None
    if settings.storage == "memory":
        logger.info("Using in-memory storage")
        users = InMemoryUserRepository()
        providers = InMemoryProviderRepository()
        presentations = InMemoryPresentationRepository()
    else:
        database = Database(settings.database_path)
        users = SQLiteUserRepository(database)
        providers = SQLiteProviderRepository(database)
        presentations = SQLitePresentationRepository(database)

    ledger = CreditLedger(users)
    auth = AuthService(users, SessionTokens(settings.jwt_secret, settings.token_ttl_seconds), ledger)
    resolver = ProviderResolver(providers, timeout=settings.llm_timeout)
    store = PresentationStore(presentations)
    orchestrator = GenerationOrchestrator(
        auth, ledger, resolver, ContentGenerator(), store, SlideDesigner()
    )

    return Services(
        settings=settings,
        auth=auth,
        ledger=ledger,
        resolver=resolver,
        store=store,
        orchestrator=orchestrator,
        corrections=CorrectionService(auth, ledger),
        database=database,
    )
