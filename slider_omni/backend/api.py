# fastapi web api for credit-gated slide generation
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Header, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from .config import get_settings
from .errors import NotFoundError, SliderError, ValidationFailedError
from .models import (
    AzureProviderRequest, GenerateContentRequest, GenerateRequest, LoginRequest,
    OpenRouterProviderRequest, RegisterRequest, ResetCreditsRequest,
    SetActiveProviderRequest, UpdatePermissionsRequest
)
from .llm_provider import describe_provider
from .services import Services, build_services
from .slide_templates import template_catalog

# configure logging
logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

AUTH_COOKIE = "authToken"


def _validation_detail(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "invalid request"


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the api around a service container (default: from settings)"""
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.initialize()
        yield
        services.close()

    # initialize fastapi application
    app = FastAPI(
        title="Slider Omni API",
        description="Generate HTML slide presentations from a topic using AI",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # add cors middleware to allow cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # every service error becomes {"error": kind, "detail": message}
    @app.exception_handler(SliderError)
    async def slider_error_handler(request: Request, exc: SliderError):
        if exc.status_code >= 500:
            logger.error(f"✗ {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = ValidationFailedError(_validation_detail(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    def authorization_of(request: Request, authorization: Optional[str]) -> Optional[str]:
        # browsers send the session cookie instead of a header
        if authorization:
            return authorization
        token = request.cookies.get(AUTH_COOKIE)
        return f"Bearer {token}" if token else None

    def require_admin(request: Request, authorization: Optional[str]):
        identity = services.auth.authenticate(authorization_of(request, authorization))
        return services.auth.require_admin(identity)

    def session_response(response: Response, token: str, user) -> Dict[str, Any]:
        response.set_cookie(
            AUTH_COOKIE,
            token,
            max_age=services.settings.token_ttl_seconds,
            httponly=True,
            samesite="lax",
            path="/",
        )
        return {"token": token, "user": user.public()}

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "storage": services.settings.storage}

    # ------------------------------------------------------------------
    # generation
    # ------------------------------------------------------------------

    @app.post("/api/generate-with-template")
    def generate_with_template(
        body: GenerateRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        result = services.orchestrator.generate(authorization_of(request, authorization), body)
        return {"success": True, **result.model_dump(by_alias=True)}

    @app.get("/api/generate-with-template")
    @app.get("/api/templates")
    async def list_templates():
        return {"templates": template_catalog()}

    @app.post("/api/generate-content")
    def generate_content(
        body: GenerateContentRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        content = services.orchestrator.generate_content(authorization_of(request, authorization), body)
        return {"success": True, **content.model_dump()}

    @app.post("/api/generate-slides/from-structure")
    def generate_from_structure(
        body: GenerateContentRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        result = services.orchestrator.generate_designed(authorization_of(request, authorization), body)
        return {"success": True, **result.model_dump(by_alias=True)}

    # ------------------------------------------------------------------
    # presentations
    # ------------------------------------------------------------------

    @app.get("/api/presentations")
    def list_presentations(request: Request, authorization: Optional[str] = Header(None)):
        identity = services.auth.authenticate(authorization_of(request, authorization))
        summaries = services.store.list_for_owner(identity.username)
        return {"presentations": [s.model_dump(by_alias=True, mode="json") for s in summaries]}

    @app.get("/api/presentations/{presentation_id}")
    def get_presentation(presentation_id: str):
        record = services.store.get(presentation_id)
        if record is None:
            raise NotFoundError("Presentation not found")
        return record.model_dump(by_alias=True, mode="json", exclude_none=True)

    @app.get("/presentations/{presentation_id}", response_class=HTMLResponse)
    def view_presentation(presentation_id: str):
        record = services.store.get(presentation_id)
        if record is None:
            raise NotFoundError("Presentation not found")
        return HTMLResponse(content=record.html)

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    @app.post("/api/auth/register", status_code=201)
    def register(body: RegisterRequest, response: Response):
        token, user = services.auth.register(body.username, body.email, body.password)
        return session_response(response, token, user)

    @app.post("/api/auth/login")
    def login(body: LoginRequest, response: Response):
        token, user = services.auth.login(body.username, body.password)
        return session_response(response, token, user)

    @app.get("/api/auth/me")
    def me(request: Request, authorization: Optional[str] = Header(None)):
        identity = services.auth.authenticate(authorization_of(request, authorization))
        return {"user": services.auth.me(identity)}

    @app.get("/api/auth/admin/credits")
    def list_credits(request: Request, authorization: Optional[str] = Header(None)):
        require_admin(request, authorization)
        return {"users": services.auth.list_users()}

    @app.post("/api/auth/admin/credits")
    def reset_credits(
        body: ResetCreditsRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        require_admin(request, authorization)
        if not services.ledger.reset(body.username):
            raise NotFoundError("user not found")
        return {"ok": True, "username": body.username, **services.ledger.balances(body.username)}

    @app.get("/api/auth/admin/permissions")
    def list_permissions(request: Request, authorization: Optional[str] = Header(None)):
        require_admin(request, authorization)
        return {
            "users": [
                {"username": u["username"], "permissions": u["permissions"]}
                for u in services.auth.list_users()
            ]
        }

    @app.post("/api/auth/admin/permissions")
    def update_permissions(
        body: UpdatePermissionsRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        require_admin(request, authorization)
        services.auth.update_permissions(body.username, body.permissions)
        return {"ok": True}

    # ------------------------------------------------------------------
    # llm providers (admin)
    # ------------------------------------------------------------------

    @app.get("/api/llm/providers")
    def list_providers(request: Request, authorization: Optional[str] = Header(None)):
        require_admin(request, authorization)
        return {"providers": services.resolver.list_providers()}

    @app.put("/api/llm/providers/azure")
    def upsert_azure(
        body: AzureProviderRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        require_admin(request, authorization)
        config = services.resolver.upsert_azure(
            body.api_key, body.endpoint, body.deployment_name, body.api_version
        )
        return {"ok": True, "provider": describe_provider(config)}

    @app.put("/api/llm/providers/openrouter")
    def upsert_openrouter(
        body: OpenRouterProviderRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        require_admin(request, authorization)
        config = services.resolver.upsert_openrouter(body.api_key, body.model, body.base_url)
        return {"ok": True, "provider": describe_provider(config)}

    @app.post("/api/llm/providers/active")
    def set_active_provider(
        body: SetActiveProviderRequest,
        request: Request,
        authorization: Optional[str] = Header(None)
    ):
        require_admin(request, authorization)
        configs = services.resolver.set_active(body.provider)
        return {"ok": True, "providers": [describe_provider(c) for c in configs]}

    # ------------------------------------------------------------------
    # corrections
    # ------------------------------------------------------------------

    @app.post("/api/corrections/submit")
    def submit_correction(
        request: Request,
        payload: Dict[str, Any] = Body(...),
        authorization: Optional[str] = Header(None)
    ):
        return services.corrections.submit(authorization_of(request, authorization), payload)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
