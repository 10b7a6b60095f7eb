"""
Pytest configuration and fixtures

Services run on in-memory storage (or a temporary sqlite file) and a fake
text-generation model, so no test touches the network.
"""

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# the module-level api app is built from the environment at import time
os.environ.setdefault("SLIDER_STORAGE", "memory")

from slider_omni.backend.config import Settings
from slider_omni.backend.models import ProviderKind
from slider_omni.backend.services import Services, build_services

TEST_SECRET = "test-secret"


def canned_slides(count: int, topic: str = "Remote Work") -> str:
    """Model-style answer: a JSON array wrapped in chatter"""
    slides = [{"title": f"{topic} overview", "content": [], "notes": "Opening"}]
    for n in range(2, count + 1):
        slides.append({
            "title": f"{topic} point {n}",
            "content": [f"Key idea {n}.1", f"Key idea {n}.2", f"Key idea {n}.3"],
        })
    return "Here is your presentation:\n```json\n" + json.dumps(slides[:count]) + "\n```"


def designed_html(count: int, fenced: bool = True) -> str:
    """Model-style html document with count slide divs and no navigation"""
    slides = "\n".join(
        f'  <div id="slide{n}" class="slide"><h1>Slide {n}</h1><ul><li>Point</li></ul></div>'
        for n in range(1, count + 1)
    )
    html = (
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n<style>.slide { width: 100vw; }</style>\n"
        f"</head>\n<body>\n{slides}\n</body>\n</html>"
    )
    return f"```html\n{html}\n```" if fenced else html


class FakeModel:
    """Stands in for a chat-completion client"""

    name = "Fake model"

    def __init__(self, responses: Optional[List[str]] = None, slide_count: int = 5):
        self.responses = list(responses or [])
        self.slide_count = slide_count
        self.prompts: List[str] = []

    def generate_text(self, prompt: str, max_tokens: int = 4000, temperature: float = 0.7) -> str:
        self.prompts.append(prompt)
        if self.responses:
            return self.responses.pop(0)
        return canned_slides(self.slide_count)

    def test_connection(self) -> bool:
        return True


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def frozen_clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_settings() -> Settings:
    return Settings(jwt_secret=TEST_SECRET, storage="memory")


@pytest.fixture
def sqlite_settings(tmp_path: Path) -> Settings:
    return Settings(jwt_secret=TEST_SECRET, storage="sqlite", database_path=str(tmp_path / "test.db"))


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel()


@pytest.fixture
def services(memory_settings: Settings, fake_model: FakeModel, monkeypatch) -> Services:
    """In-memory services with an active openrouter provider backed by the fake model"""
    services = build_services(memory_settings)
    services.initialize()
    services.resolver.upsert_openrouter("sk-or-test-key", "test/model")
    services.resolver.set_active(ProviderKind.OPENROUTER)
    monkeypatch.setattr(services.resolver, "build_model", lambda config: fake_model)
    return services


@pytest.fixture
def user_token(services: Services) -> str:
    token, _ = services.auth.register("alice", "alice@example.com", "wonderland")
    return token


@pytest.fixture
def admin_token(services: Services) -> str:
    from slider_omni.backend.models import Permissions
    from slider_omni.backend.users import new_user_record

    services.auth.users.add(
        new_user_record("root", "root@example.com", "toor", permissions=Permissions(sudo=True))
    )
    token, _ = services.auth.login("root", "toor")
    return token


@pytest.fixture
def client(services: Services):
    from fastapi.testclient import TestClient
    from slider_omni.backend.api import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client
