#!/usr/bin/env python3
"""
Example usage of the slide generation services without the HTTP layer
"""

import os
import sys
from pathlib import Path

# add the project root to python path so we can import backend modules
sys.path.insert(0, str(Path(__file__).parent))

from slider_omni.backend.config import Settings
from slider_omni.backend.errors import SliderError
from slider_omni.backend.models import GenerateRequest, ProviderKind
from slider_omni.backend.services import build_services


def main():
    """Generate one presentation with an OpenRouter key from the environment"""

    api_key = os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        print("Set OPENROUTER_API_KEY to run this example")
        print("(optionally OPENROUTER_MODEL, default openai/gpt-4o-mini)")
        return

    # in-memory storage: nothing is written to disk
    services = build_services(Settings(storage="memory"))
    services.resolver.upsert_openrouter(api_key, os.getenv("OPENROUTER_MODEL", "openai/gpt-4o-mini"))
    services.resolver.set_active(ProviderKind.OPENROUTER)

    token, user = services.auth.register("example", "example@example.com", "example-password")
    print(f"Registered {user.username} with {user.omnitokens} omnitokens")

    request = GenerateRequest(
        topic="Remote Work",
        description="Benefits and challenges for small teams",
        slide_count=5,
        template_id="gradient-modern",
        mix_layouts=True,
    )

    print("Generating presentation...")

    try:
        result = services.orchestrator.generate(f"Bearer {token}", request)
    except SliderError as e:
        print(f"✗ Error: {e}")
        return

    print(f"✓ Generated {result.slide_count} slides with {result.template_name}")
    for warning in result.warnings:
        print(f"  ! {warning}")

    record = services.store.get(result.presentation_id)
    output_file = Path(f"{result.presentation_id}.html")
    output_file.write_text(record.html, encoding="utf-8")
    print(f"✓ Presentation saved to: {output_file}")
    print(f"✓ Omnitokens left: {services.ledger.balances('example')['omnitokens']}")


if __name__ == "__main__":
    main()
