# generation pipeline: authenticate, charge, resolve provider, generate, render, persist
import time
import logging
from datetime import datetime
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Type

from .auth import AuthService
from .content_generator import ContentGenerator
from .credit_ledger import CreditLedger
from .database import utcnow
from .errors import (
    SliderError, ContentGenerationError, InsufficientCreditError, PersistenceError,
    ProviderConfigurationError, RenderingError, ValidationFailedError
)
from .llm_provider import ProviderResolver
from .models import (
    CreditCounter, DesignedResult, GenerateContentRequest, GenerateRequest, GenerateResult,
    GeneratedContent, Identity, SlideContent
)
from .presentation_store import PresentationStore, new_presentation_id
from .renderer import inject_navigation, render_presentation, validate_presentation_html
from .slide_designer import SlideDesigner
from .slide_templates import SlideTemplate, get_template

logger = logging.getLogger(__name__)

GENERATION_COST = 1
CORRECTION_COST = 1


class PipelineState(str, Enum):
    AUTHENTICATING = "authenticating"
    CHARGING = "charging"
    RESOLVING_PROVIDER = "resolving_provider"
    GENERATING_CONTENT = "generating_content"
    DESIGNING = "designing"
    RENDERING = "rendering"
    PERSISTING = "persisting"
    DONE = "done"
    ERROR = "error"


@contextmanager
def pipeline_step(state: PipelineState, wrap_as: Type[SliderError]) -> Iterator[None]:
    """Tag errors with the step they came from; wrap anything unclassified"""
    try:
        yield
    except SliderError as e:
        e.context.setdefault("state", state.value)
        raise
    except Exception as e:
        logger.error(f"✗ Unexpected failure while {state.value}: {e}", exc_info=True)
        raise wrap_as(f"{state.value.replace('_', ' ')} failed", cause=e, context={"state": state.value})


# generation orchestrator
class GenerationOrchestrator:
    def __init__(
        self,
        auth: AuthService,
        ledger: CreditLedger,
        resolver: ProviderResolver,
        generator: ContentGenerator,
        store: PresentationStore,
        designer: Optional[SlideDesigner] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.auth = auth
        self.ledger = ledger
        self.resolver = resolver
        self.generator = generator
        self.store = store
        self.designer = designer or SlideDesigner()
        self.clock = clock

    @staticmethod
    def _prepare(request: GenerateRequest) -> SlideTemplate:
        """Checks that need no credit: slide count presence and template id"""
        if not request.has_supplied_slides and request.slide_count is None:
            raise ValidationFailedError("slideCount is required when slides are not supplied")
        return get_template(request.template_id)

    def _authenticate(self, authorization: Optional[str]) -> Identity:
        logger.info("Step 1: Authenticating...")
        with pipeline_step(PipelineState.AUTHENTICATING, SliderError):
            identity = self.auth.authenticate(authorization)
        logger.info(f"  ✓ User: {identity.username}")
        return identity

    def _charge(self, identity: Identity):
        logger.info("\nStep 2: Charging 1 omnitoken...")
        with pipeline_step(PipelineState.CHARGING, PersistenceError):
            charged = self.ledger.charge(identity.username, CreditCounter.TOKENS, GENERATION_COST)
        if not charged:
            raise InsufficientCreditError(
                "Insufficient omnitokens",
                context={"state": PipelineState.CHARGING.value, "username": identity.username},
            )
        logger.info("  ✓ Charged")

    def _resolve_model(self):
        logger.info("\nStep 3: Resolving LLM provider...")
        with pipeline_step(PipelineState.RESOLVING_PROVIDER, ProviderConfigurationError):
            model = self.resolver.active_model()
        logger.info(f"  ✓ Provider: {model.name}")
        return model

    def _generate_slides(
        self,
        topic: str,
        description: Optional[str],
        slide_count: int,
        model=None
    ) -> GeneratedContent:
        if model is None:
            model = self._resolve_model()

        logger.info("\nStep 4: Generating slide content...")
        with pipeline_step(PipelineState.GENERATING_CONTENT, ContentGenerationError):
            content = self.generator.generate_slide_content(topic, description or "", slide_count, model)
        logger.info(f"  ✓ Generated {len(content.slides)} slides")
        return content

    def generate(self, authorization: Optional[str], request: GenerateRequest) -> GenerateResult:
        """Run the full pipeline; one omnitoken is spent once charging succeeds"""
        start_time = time.time()
        logger.info(f"Starting generation: '{request.topic}'")
        logger.info("=" * 60)

        identity = self._authenticate(authorization)
        template = self._prepare(request)
        self._charge(identity)

        # no refund from here on; a failure after the charge keeps it spent
        warnings: List[str] = []
        if request.has_supplied_slides:
            logger.info("\nStep 3-4: Using supplied slides, skipping generation")
            slides: List[SlideContent] = list(request.slides)
        else:
            content = self._generate_slides(request.topic, request.description, request.slide_count)
            slides = content.slides
            warnings.extend(content.warnings)

        logger.info(f"\nStep 5: Rendering with template {template.name}...")
        with pipeline_step(PipelineState.RENDERING, RenderingError):
            html = render_presentation(slides, template, request.topic, request.mix_layouts)
        logger.info(f"  ✓ Rendered {len(slides)} slides")

        record = self._persist(identity, request.topic, request.description, html, slides)

        logger.info("=" * 60)
        logger.info(f"✓ SUCCESS! {record.id} completed in {time.time() - start_time:.2f} seconds")
        logger.info("=" * 60)

        return GenerateResult(
            presentation_id=record.id,
            slide_count=len(slides),
            template_name=template.name,
            warnings=warnings,
        )

    def generate_designed(self, authorization: Optional[str], request: GenerateContentRequest) -> DesignedResult:
        """Two model calls: slide content, then a model-designed document around it"""
        start_time = time.time()
        logger.info(f"Starting designed generation: '{request.topic}'")
        logger.info("=" * 60)

        identity = self._authenticate(authorization)
        self._charge(identity)

        model = self._resolve_model()
        content = self._generate_slides(request.topic, request.description, request.slide_count, model)
        slides = content.slides

        logger.info("\nStep 5: Designing presentation html...")
        with pipeline_step(PipelineState.DESIGNING, ContentGenerationError):
            html = self.designer.design_presentation(slides, request.topic, model)

        with pipeline_step(PipelineState.RENDERING, RenderingError):
            html = inject_navigation(html, len(slides))
            validate_presentation_html(html, len(slides))
        logger.info(f"  ✓ Navigation added for {len(slides)} slides")

        record = self._persist(identity, request.topic, request.description, html, slides)

        logger.info("=" * 60)
        logger.info(f"✓ SUCCESS! {record.id} completed in {time.time() - start_time:.2f} seconds")
        logger.info("=" * 60)

        return DesignedResult(
            presentation_id=record.id,
            slide_count=len(slides),
            slides=slides,
            warnings=content.warnings,
        )

    def _persist(
        self,
        identity: Identity,
        topic: str,
        description: Optional[str],
        html: str,
        slides: List[SlideContent]
    ):
        logger.info("\nStep 6: Persisting presentation...")
        with pipeline_step(PipelineState.PERSISTING, PersistenceError):
            record = self.store.create(
                new_presentation_id(self.clock),
                owner=identity.username,
                title=topic,
                html=html,
                slide_count=len(slides),
                description=description or "",
                slides=slides,
            )
        return record

    def generate_content(self, authorization: Optional[str], request: GenerateContentRequest) -> GeneratedContent:
        """Content only, for reviewing slides before they are rendered"""
        logger.info(f"Starting content generation: '{request.topic}'")
        identity = self._authenticate(authorization)
        self._charge(identity)
        content = self._generate_slides(request.topic, request.description, request.slide_count)
        logger.info(f"✓ Content ready for {identity.username}")
        return content


# correction requests spend omnicoins
class CorrectionService:
    def __init__(self, auth: AuthService, ledger: CreditLedger):
        self.auth = auth
        self.ledger = ledger

    def submit(self, authorization: Optional[str], payload: Any) -> Dict[str, Any]:
        identity = self.auth.authenticate(authorization)
        if not self.ledger.charge(identity.username, CreditCounter.COINS, CORRECTION_COST):
            raise InsufficientCreditError("Insufficient omnicoins")
        logger.info(f"✓ Correction received from {identity.username}")
        return {"ok": True, "received": payload}
