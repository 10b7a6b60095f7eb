# renders slide records into one self-contained html presentation
import re
import logging
from html import escape
from typing import List, Sequence

from .errors import RenderingError
from .models import SlideContent
from .slide_templates import SlideTemplate, generate_template_css, select_layout

logger = logging.getLogger(__name__)

_SLIDE_ID = re.compile(r'<div\s+id="(slide\d+)"')


def navigation_script(total: int) -> str:
    """Keyboard navigation; exactly one slide is active at a time"""
    return f"""<script>
(function() {{
  window.currentSlide = 1;
  window.totalSlides = {total};

  window.showSlide = function(n) {{
    if (n < 1 || n > window.totalSlides) {{
      return;
    }}
    var slides = document.querySelectorAll('[id^="slide"]');
    for (var i = 0; i < slides.length; i++) {{
      var el = slides[i];
      if (!/^slide\\d+$/.test(el.id)) {{
        continue;
      }}
      if (el.id === 'slide' + n) {{
        el.classList.add('active');
      }} else {{
        el.classList.remove('active');
      }}
    }}
    window.currentSlide = n;
  }};

  document.addEventListener('keydown', function(e) {{
    if (e.key === 'ArrowRight' && window.currentSlide < window.totalSlides) {{
      window.showSlide(window.currentSlide + 1);
    }} else if (e.key === 'ArrowLeft' && window.currentSlide > 1) {{
      window.showSlide(window.currentSlide - 1);
    }}
  }});

  if (document.readyState === 'loading') {{
    document.addEventListener('DOMContentLoaded', function() {{ window.showSlide(1); }});
  }} else {{
    window.showSlide(1);
  }}
}})();
</script>"""


# visibility rules for documents whose stylesheet the model wrote
NAVIGATION_STYLE = """<style>
.slide { display: none; }
.slide.active { display: flex; visibility: visible; opacity: 1; z-index: 10; }
</style>"""


def inject_navigation(html: str, total: int) -> str:
    """Add the slide controller to a finished document, before its closing body tag"""
    lowered = html.lower()
    body_close = lowered.rfind("</body>")
    if body_close == -1:
        raise RenderingError("Document has no </body> to attach navigation to")

    html = html[:body_close] + navigation_script(total) + "\n" + html[body_close:]
    head_close = lowered.find("</head>")
    if head_close != -1:
        html = html[:head_close] + NAVIGATION_STYLE + "\n" + html[head_close:]
    return html


def count_slide_containers(html: str) -> int:
    return len(_SLIDE_ID.findall(html))


def validate_presentation_html(html: str, expected_count: int):
    """Check document framing and that slide ids run slide1..slideN in order"""
    if not html.lstrip().startswith("<!DOCTYPE html>"):
        raise RenderingError("Rendered document is missing the doctype")
    if not html.rstrip().endswith("</html>"):
        raise RenderingError("Rendered document is not closed")

    ids = _SLIDE_ID.findall(html)
    expected = [f"slide{n}" for n in range(1, expected_count + 1)]
    if ids != expected:
        raise RenderingError(
            f"Expected {expected_count} slide containers, found {len(ids)}",
            context={"found": ids[:20]},
        )


def render_presentation(
    slides: Sequence[SlideContent],
    template: SlideTemplate,
    topic: str,
    mix_layouts: bool = False
) -> str:
    """Build the full document for slides using template's layouts"""
    if not slides:
        raise RenderingError("Cannot render a presentation without slides")

    logger.info(f"Rendering {len(slides)} slides with template {template.id}")

    sections: List[str] = []
    for index, slide in enumerate(slides):
        layout = select_layout(template, index, bool(slide.content), mix_layouts)
        try:
            body = layout.render(slide.title, slide.content)
        except Exception as e:
            raise RenderingError(
                f"Layout {layout.id} failed on slide {index + 1}",
                cause=e,
                context={"slide": index + 1, "layout": layout.id},
            )
        sections.append(
            f'<div id="slide{index + 1}" class="slide" data-layout="{layout.id}">\n'
            f'{body}\n</div>'
        )

    css = generate_template_css(template)
    document = f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{escape(topic)}</title>
<style>
{css}
</style>
</head>
<body>
{chr(10).join(sections)}
{navigation_script(len(slides))}
</body>
</html>"""

    validate_presentation_html(document, len(slides))
    logger.info(f"✓ Rendered {len(slides)} slides")
    return document
