"""
Tests for the presentation quality checker script.
"""

from slider_omni.backend.models import SlideContent
from slider_omni.backend.renderer import render_presentation
from slider_omni.backend.slide_templates import get_template

from verify_slide_quality import analyze_slides, calculate_quality_score


def test_analyze_rendered_presentation():
    slides = [
        SlideContent(title="Remote Work"),
        SlideContent(title="Benefits", content=["Focus time", "No commute"]),
        SlideContent(title="Challenges", content=["Isolation"]),
    ]
    html = render_presentation(slides, get_template("corporate-pro"), "Remote Work")

    analyzed = analyze_slides(html)
    assert [s["number"] for s in analyzed] == [1, 2, 3]
    assert [s["title"] for s in analyzed] == ["Remote Work", "Benefits", "Challenges"]
    assert analyzed[1]["layout"] == "corporate-content"
    assert "No commute" in analyzed[1]["bullets"]
    assert calculate_quality_score(analyzed) == 100


def test_empty_slides_lower_the_score():
    slides = [
        {"number": 1, "layout": "-", "title": "Intro", "bullets": []},
        {"number": 2, "layout": "-", "title": "", "bullets": []},
    ]
    assert calculate_quality_score(slides) == 75
    assert calculate_quality_score([]) == 0
