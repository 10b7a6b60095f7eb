#!/usr/bin/env python3
"""
Presentation Quality Verification Tool

Checks an exported presentation (the .html written by `slider-omni export`)
by:
1. Validating the document framing and slide container ids
2. Listing each slide's title and bullet count
3. Flagging empty or overloaded slides
4. Generating a simple quality score
"""

import re
import sys
from pathlib import Path
from typing import Any, Dict, List

# add the project root to python path so we can import backend modules
sys.path.insert(0, str(Path(__file__).parent))

from slider_omni.backend.errors import RenderingError
from slider_omni.backend.renderer import count_slide_containers, validate_presentation_html

SLIDE_BLOCK = re.compile(r'<div id="slide(\d+)" class="slide"([^>]*)>([\s\S]*?)(?=<div id="slide\d+" class="slide"|<script>)')
TITLE = re.compile(r"<h[12][^>]*>([\s\S]*?)</h[12]>")
BULLET = re.compile(r"<(?:li|p|span)[^>]*>([^<]+)</(?:li|p|span)>")
LAYOUT = re.compile(r'data-layout="([^"]+)"')


def analyze_slides(html: str) -> List[Dict[str, Any]]:
    """Title, layout and bullets of every slide container"""
    slides = []
    for number, attributes, body in SLIDE_BLOCK.findall(html):
        title = TITLE.search(body)
        layout = LAYOUT.search(attributes)
        bullets = [b.strip() for b in BULLET.findall(body) if b.strip()]
        slides.append({
            "number": int(number),
            "layout": layout.group(1) if layout else "-",
            "title": title.group(1).strip() if title else "",
            "bullets": bullets,
        })
    return slides


def calculate_quality_score(slides: List[Dict[str, Any]]) -> int:
    """100 minus penalties for untitled, empty and overloaded slides"""
    if not slides:
        return 0
    score = 100
    for slide in slides[1:]:
        if not slide["title"]:
            score -= 15
        if not slide["bullets"]:
            score -= 10
        if len(slide["bullets"]) > 6:
            score -= 5
    return max(score, 0)


def display_quality_report(html: str, slides: List[Dict[str, Any]]):
    print("\n" + "=" * 60)
    print("📊 PRESENTATION QUALITY REPORT")
    print("=" * 60)

    total = count_slide_containers(html)
    print(f"\n📈 OVERALL METRICS:")
    print(f"   Slide containers: {total}")
    print(f"   Document size: {len(html)} characters")

    try:
        validate_presentation_html(html, total)
        print("   Structure: ✅ valid")
    except RenderingError as e:
        print(f"   Structure: ❌ {e}")

    print(f"\n📝 SLIDES:")
    for slide in slides:
        print(f"   {slide['number']:>2}. [{slide['layout']}] {slide['title'] or '(untitled)'}"
              f" - {len(slide['bullets'])} bullets")

    issues = [s for s in slides[1:] if not s["bullets"]]
    if issues:
        print(f"\n⚠️  QUALITY ISSUES:")
        for slide in issues:
            print(f"   • Slide {slide['number']} has no content")

    quality_score = calculate_quality_score(slides)
    print(f"\n🏆 OVERALL QUALITY SCORE: {quality_score}/100")
    if quality_score >= 80:
        print("   ✅ Excellent quality!")
    elif quality_score >= 60:
        print("   ⚠️  Good quality with room for improvement")
    else:
        print("   ❌ Poor quality - needs attention")


def main():
    if len(sys.argv) != 2:
        print("Usage: python verify_slide_quality.py <presentation.html>")
        print("Example: python verify_slide_quality.py pres-1718000000000-abc1234.html")
        sys.exit(1)

    html_file = Path(sys.argv[1])
    if not html_file.exists():
        print(f"❌ File not found: {html_file}")
        sys.exit(1)

    print(f"🔍 Analyzing presentation: {html_file}")
    html = html_file.read_text(encoding="utf-8")
    display_quality_report(html, analyze_slides(html))


if __name__ == "__main__":
    main()
