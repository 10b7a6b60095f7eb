#!/usr/bin/env python3
"""
test script for slider-omni
tests all components to make sure everything works correctly
"""

import os
import sys
import json
from pathlib import Path

# add the project root to python path so we can import backend modules
sys.path.insert(0, str(Path(__file__).parent))
os.environ.setdefault("SLIDER_STORAGE", "memory")


class CannedModel:
    """answers every prompt with the same five slides"""
    name = "Canned model"

    def generate_text(self, prompt, max_tokens=4000, temperature=0.7):
        slides = [{"title": "Remote Work", "content": []}]
        slides += [{"title": f"Point {n}", "content": [f"Detail {n}"]} for n in range(2, 6)]
        return json.dumps(slides)


def _services():
    from slider_omni.backend.config import Settings
    from slider_omni.backend.models import ProviderKind
    from slider_omni.backend.services import build_services

    services = build_services(Settings(storage="memory", jwt_secret="smoke-test"))
    services.resolver.upsert_openrouter("sk-or-smoke", "smoke/model")
    services.resolver.set_active(ProviderKind.OPENROUTER)
    services.resolver.build_model = lambda config: CannedModel()
    return services


def test_imports():
    """test if all modules can be imported"""
    print("🔍 Testing imports...")

    from slider_omni.backend.api import create_app
    from slider_omni.backend.auth import AuthService, SessionTokens
    from slider_omni.backend.credit_ledger import CreditLedger
    from slider_omni.backend.llm_provider import ProviderResolver
    from slider_omni.backend.content_generator import ContentGenerator
    from slider_omni.backend.renderer import render_presentation
    from slider_omni.backend.presentation_store import PresentationStore
    from slider_omni.backend.orchestrator import GenerationOrchestrator
    print("✅ All imports successful")


def test_templates():
    """test that every template renders a valid document"""
    print("\n🔍 Testing templates...")

    from slider_omni.backend.models import SlideContent
    from slider_omni.backend.renderer import count_slide_containers, render_presentation
    from slider_omni.backend.slide_templates import ALL_TEMPLATES

    slides = [SlideContent(title="Intro")] + [
        SlideContent(title=f"Slide {n}", content=["a", "b"]) for n in range(2, 6)
    ]
    for template in ALL_TEMPLATES:
        html = render_presentation(slides, template, "Smoke test", mix_layouts=True)
        assert count_slide_containers(html) == 5, template.id
        print(f"  ✓ {template.name}: {len(html)} characters")
    print("✅ Templates render correctly")


def test_credits():
    """test registration and credit charging"""
    print("\n🔍 Testing credits...")

    from slider_omni.backend.models import CreditCounter

    services = _services()
    services.auth.register("smoke", "smoke@example.com", "pw")
    assert services.ledger.charge("smoke", CreditCounter.TOKENS)
    balances = services.ledger.balances("smoke")
    assert balances == {"omnitokens": 9, "omnicoins": 45}
    print(f"  ✓ Balances after one charge: {balances}")
    print("✅ Credit ledger works")


def test_full_pipeline():
    """test generation end to end with a canned model"""
    print("\n🔍 Testing full generation pipeline...")

    from slider_omni.backend.models import GenerateRequest

    services = _services()
    token, _ = services.auth.register("smoke", "smoke@example.com", "pw")
    request = GenerateRequest.model_validate({"topic": "Remote Work", "slideCount": 5})
    result = services.orchestrator.generate(f"Bearer {token}", request)

    record = services.store.get(result.presentation_id)
    assert record is not None
    assert record.slide_count == 5
    print(f"  ✓ Presentation {result.presentation_id} ({result.template_name})")
    print("✅ Full pipeline works")


def main():
    """run all tests"""
    print("🚀 Slider Omni - System Test")
    print("=" * 50)

    # list of all tests to run
    tests = [
        ("Import Test", test_imports),
        ("Templates", test_templates),
        ("Credits", test_credits),
        ("Full Pipeline", test_full_pipeline),
    ]

    results = []

    # run each test and collect results
    for test_name, test_func in tests:
        try:
            test_func()
            results.append((test_name, True))
        except Exception as e:
            print(f"❌ {test_name} failed: {str(e)}")
            results.append((test_name, False))

    # show summary of all tests
    print("\n" + "=" * 50)
    print("📊 TEST SUMMARY")
    print("=" * 50)

    passed = sum(1 for _, result in results if result)
    total = len(results)

    for test_name, result in results:
        status = "✅ PASS" if result else "❌ FAIL"
        print(f"{status} {test_name}")

    print(f"\nOverall: {passed}/{total} tests passed")

    if passed == total:
        print("\n🎉 All tests passed! The system is ready to use.")
        print("\n📋 Next steps:")
        print("1. Configure a provider: slider-omni set-openrouter --api-key ... --model ... --activate")
        print("2. Start the server: python main.py")
        print("3. Register, log in and generate a presentation")
    else:
        print(f"\n⚠️  {total - passed} tests failed. Please fix the issues above.")
        sys.exit(1)


if __name__ == "__main__":
    main()
