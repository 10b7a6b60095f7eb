# asks the model to design the whole html document for already generated slides
import re
import logging
from typing import Sequence

from .content_generator import TextGenerationModel
from .errors import ContentGenerationError
from .models import SlideContent

logger = logging.getLogger(__name__)

_OPEN_FENCE = re.compile(r"^```(?:html?)?[ \t]*\n?", re.IGNORECASE)
_CLOSE_FENCE = re.compile(r"\n?```$")
_DOCTYPE = re.compile(r"^<!doctype[^>]*>", re.IGNORECASE)


def build_design_prompt(slides: Sequence[SlideContent], topic: str) -> str:
    """One document, one div per slide, no navigation controls"""
    outline = "\n".join(
        f"Slide {n}:\n  Title: {slide.title}\n  Content: {' | '.join(slide.content)}"
        for n, slide in enumerate(slides, start=1)
    )
    total = len(slides)
    return f"""You are an expert HTML/CSS designer.

IMPORTANT: do NOT generate navigation components, next/previous buttons or slide
controls. Those are added automatically.

Create ONE complete HTML5 document for a presentation about: "{topic}"

SLIDE STRUCTURE:
{outline}

REQUIREMENTS:

1. A single document: <!DOCTYPE html> first, one <html>, <head> and <body>.
2. Each slide in its own div, numbered in order:
   <div id="slide1" class="slide">...</div>
   <div id="slide2" class="slide">...</div>
   ... up to slide{total}. Use id="slideN" on nothing else.
3. All CSS in a single <style> tag in the <head>. Modern dark theme with
   vibrant accents; every .slide fills 100vw x 100vh and centers its content
   with flexbox.
4. Each slide uses <h1> for the title and <ul> or <p> for the content.
5. Return ONLY the HTML, starting with <!DOCTYPE html> and ending with </html>.
   No text before or after and no code fences."""


def clean_model_html(text: str) -> str:
    """Strip code fences and make sure the document opens with the html5 doctype"""
    html = (text or "").strip()
    html = _OPEN_FENCE.sub("", html, count=1)
    html = _CLOSE_FENCE.sub("", html, count=1).strip()

    if _DOCTYPE.match(html):
        html = _DOCTYPE.sub("<!DOCTYPE html>", html, count=1)
    elif html.lower().startswith("<html"):
        html = "<!DOCTYPE html>\n" + html
    else:
        raise ContentGenerationError("Model did not return an html document")

    if not html.lower().endswith("</html>"):
        raise ContentGenerationError("Model returned an unterminated html document")
    return html[:-len("</html>")] + "</html>"


# slide designer
class SlideDesigner:
    def __init__(self, max_tokens: int = 8000, temperature: float = 0.7):
        self.max_tokens = max_tokens
        self.temperature = temperature

    def design_presentation(
        self,
        slides: Sequence[SlideContent],
        topic: str,
        model: TextGenerationModel
    ) -> str:
        """Second model call: the styled document without navigation"""
        logger.info(f"Designing html for {len(slides)} slides on '{topic}'")
        prompt = build_design_prompt(slides, topic)
        text = model.generate_text(prompt, max_tokens=self.max_tokens, temperature=self.temperature)
        html = clean_model_html(text)
        logger.info(f"  ✓ Model returned {len(html)} characters of html")
        return html
