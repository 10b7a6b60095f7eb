# built-in visual templates: css variables plus an ordered list of layouts
from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import Callable, Dict, List, Sequence, Tuple

from .errors import NotFoundError


class LayoutCategory(str, Enum):
    TITLE_ONLY = "title-only"
    TITLE_CONTENT = "title-content"
    TWO_COLUMN = "two-column"
    TITLE_IMAGE = "title-image"
    CENTERED = "centered"
    LIST = "list"


# layouts in these categories cannot show bullet content
NON_CONTENT_CATEGORIES = (LayoutCategory.TITLE_ONLY, LayoutCategory.TITLE_IMAGE)

LayoutRenderer = Callable[[str, Sequence[str]], str]


@dataclass(frozen=True)
class LayoutDefinition:
    id: str
    name: str
    description: str
    category: LayoutCategory
    render: LayoutRenderer
    css: str = ""


@dataclass(frozen=True)
class SlideTemplate:
    id: str
    name: str
    description: str
    theme: str
    css_variables: Tuple[Tuple[str, str], ...]
    layouts: Tuple[LayoutDefinition, ...]


def is_content_capable(layout: LayoutDefinition) -> bool:
    return layout.category not in NON_CONTENT_CATEGORIES


# ---------------------------------------------------------------------------
# layout renderers (title and bullets are escaped here)
# ---------------------------------------------------------------------------

def _title_centered(title, content):
    return (
        '<div class="layout-title-centered"><div class="title-wrapper">'
        f'<h1 class="slide-title">{escape(title)}</h1>'
        '<div class="title-underline"></div></div></div>'
    )


def _content_left(title, content):
    items = "".join(f'<li class="list-item">{escape(item)}</li>' for item in content)
    return (
        '<div class="layout-content-left"><div class="content-wrapper">'
        f'<h2 class="slide-title">{escape(title)}</h2>'
        f'<ul class="content-list">{items}</ul>'
        '</div><div class="accent-shape"></div></div>'
    )


def _two_column(title, content):
    # first half left, second half right
    half = (len(content) + 1) // 2
    left = "".join(f"<p>{escape(item)}</p>" for item in content[:half])
    right = "".join(f"<p>{escape(item)}</p>" for item in content[half:])
    return (
        '<div class="layout-two-column">'
        f'<h2 class="slide-title">{escape(title)}</h2>'
        f'<div class="columns"><div class="column left">{left}</div>'
        f'<div class="column right">{right}</div></div></div>'
    )


def _hero_title(title, content):
    return (
        '<div class="layout-hero"><div class="hero-background"></div>'
        f'<h1 class="hero-title">{escape(title)}</h1></div>'
    )


def _content_right(title, content):
    items = "".join(
        f'<div class="content-item"><div class="item-bullet"></div><span>{escape(item)}</span></div>'
        for item in content
    )
    return (
        '<div class="layout-content-right"><div class="gradient-accent"></div>'
        f'<div class="content-section"><h2 class="slide-title">{escape(title)}</h2>'
        f'<div class="content-items">{items}</div></div></div>'
    )


def _decorated_list(title, content):
    items = "".join(
        f'<li class="decorated-item" style="animation-delay: {idx * 0.1:.1f}s">'
        f'<div class="item-number">{idx + 1}</div><span class="item-text">{escape(item)}</span></li>'
        for idx, item in enumerate(content)
    )
    return (
        '<div class="layout-list-decorated">'
        f'<h2 class="slide-title">{escape(title)}</h2>'
        f'<ul class="decorated-list">{items}</ul></div>'
    )


def _minimal_title(title, content):
    return (
        '<div class="layout-minimal-title">'
        f'<h1 class="minimal-title">{escape(title)}</h1><div class="minimal-line"></div></div>'
    )


def _content_simple(title, content):
    items = "".join(f'<p class="content-text">{escape(item)}</p>' for item in content)
    return (
        '<div class="layout-content-simple">'
        f'<h2 class="slide-title">{escape(title)}</h2><div class="content-area">{items}</div></div>'
    )


def _corporate_title(title, content):
    return (
        '<div class="layout-corporate-title"><div class="corporate-header">'
        f'<div class="header-bar"></div><h1 class="corporate-title">{escape(title)}</h1></div></div>'
    )


def _corporate_content(title, content):
    items = "".join(
        f'<div class="corporate-item"><span class="item-bullet"></span><span>{escape(item)}</span></div>'
        for item in content
    )
    return (
        '<div class="layout-corporate-content"><div class="content-header">'
        f'<div class="header-accent"></div><h2 class="slide-title">{escape(title)}</h2></div>'
        f'<div class="corporate-list">{items}</div></div>'
    )


# ---------------------------------------------------------------------------
# css
# ---------------------------------------------------------------------------

BASE_CSS = """
* { box-sizing: border-box; }
html, body {
  height: 100%; width: 100%; margin: 0; padding: 0; overflow: hidden;
  background: var(--bg-primary); color: var(--text-primary);
  font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
}
.slide {
  position: absolute; top: 0; left: 0; width: 100vw; height: 100vh;
  display: none; align-items: center; justify-content: center; padding: 60px;
  z-index: 1; opacity: 0; visibility: hidden;
  transition: opacity 0.6s cubic-bezier(0.25, 0.46, 0.45, 0.94);
}
.slide.active { display: flex; z-index: 10; opacity: 1; visibility: visible; }
.slide-title { font-size: 3rem; font-weight: 700; margin: 0; color: var(--text-primary); line-height: 1.2; }
@keyframes float { 0%, 100% { transform: translateY(0); } 50% { transform: translateY(-20px); } }
@keyframes slideIn { from { opacity: 0; transform: translateX(-30px); } to { opacity: 1; transform: translateX(0); } }
@media (max-width: 1024px) {
  .slide { padding: 40px; }
  .slide-title { font-size: 2.5rem; }
}
"""

TITLE_CENTERED_CSS = """
.layout-title-centered { width: 100%; text-align: center; }
.title-wrapper { display: flex; flex-direction: column; align-items: center; gap: 2rem; }
.title-underline { width: 150px; height: 6px; border-radius: 3px; background: linear-gradient(90deg, var(--accent-1), var(--accent-2)); }
"""

CONTENT_LEFT_CSS = """
.layout-content-left { display: flex; align-items: center; gap: 4rem; width: 100%; }
.content-wrapper { flex: 1; }
.content-list { list-style: none; padding: 0; margin: 2rem 0 0 0; display: flex; flex-direction: column; gap: 1.5rem; }
.list-item { font-size: 1.4rem; color: var(--text-secondary); padding-left: 2rem; position: relative; }
.list-item::before { content: ''; position: absolute; left: 0; top: 0.5rem; width: 8px; height: 8px; border-radius: 50%; background: var(--accent-2); }
.accent-shape { width: 400px; height: 400px; border-radius: 50%; opacity: 0.15; background: linear-gradient(135deg, var(--accent-1), var(--accent-3)); animation: float 6s ease-in-out infinite; }
@media (max-width: 1024px) { .layout-content-left { flex-direction: column; } .accent-shape { width: 300px; height: 300px; } }
"""

TWO_COLUMN_CSS = """
.layout-two-column { width: 100%; }
.columns { display: grid; grid-template-columns: 1fr 1fr; gap: 4rem; margin-top: 2rem; }
.column { display: flex; flex-direction: column; gap: 1.5rem; }
.column p { font-size: 1.2rem; line-height: 1.8; color: var(--text-secondary); }
@media (max-width: 1024px) { .columns { grid-template-columns: 1fr; gap: 2rem; } }
"""

HERO_CSS = """
.layout-hero { position: relative; width: 100%; text-align: center; z-index: 1; }
.hero-background { position: absolute; inset: -60px; z-index: -1; opacity: 0.2; border-radius: 30px; background: linear-gradient(135deg, var(--accent-1), var(--accent-2)); }
.hero-title { font-size: 4rem; background: linear-gradient(90deg, var(--accent-1), var(--accent-2)); -webkit-background-clip: text; -webkit-text-fill-color: transparent; background-clip: text; }
"""

CONTENT_RIGHT_CSS = """
.layout-content-right { width: 100%; position: relative; }
.gradient-accent { position: absolute; top: -100px; right: -200px; width: 500px; height: 500px; border-radius: 50%; opacity: 0.1; z-index: 0; background: linear-gradient(135deg, var(--accent-1), var(--accent-3)); }
.content-section { position: relative; z-index: 1; }
.content-items { display: flex; flex-direction: column; gap: 1.2rem; margin-top: 2rem; }
.content-item { display: flex; align-items: center; gap: 1.5rem; font-size: 1.3rem; color: var(--text-secondary); }
.content-item .item-bullet { width: 12px; height: 12px; border-radius: 50%; flex-shrink: 0; background: linear-gradient(90deg, var(--accent-1), var(--accent-2)); }
"""

DECORATED_LIST_CSS = """
.layout-list-decorated { width: 100%; }
.decorated-list { list-style: none; padding: 0; margin: 2rem 0 0 0; display: flex; flex-direction: column; gap: 1.5rem; }
.decorated-item { display: flex; align-items: center; gap: 1.5rem; opacity: 0; animation: slideIn 0.6s ease-out forwards; }
.item-number { width: 50px; height: 50px; border-radius: 50%; display: flex; align-items: center; justify-content: center; font-weight: 700; font-size: 1.3rem; flex-shrink: 0; background: linear-gradient(135deg, var(--accent-1), var(--accent-2)); }
.item-text { font-size: 1.4rem; color: var(--text-secondary); }
"""

MINIMAL_TITLE_CSS = """
.layout-minimal-title { text-align: center; width: 100%; }
.minimal-title { font-size: 3.5rem; font-weight: 300; letter-spacing: 2px; }
.minimal-line { width: 100px; height: 2px; margin: 2rem auto 0; background: var(--accent-1); }
"""

CONTENT_SIMPLE_CSS = """
.layout-content-simple { width: 100%; max-width: 900px; }
.content-area { margin-top: 2rem; display: flex; flex-direction: column; gap: 1.5rem; }
.content-text { font-size: 1.4rem; line-height: 1.8; margin: 0; font-weight: 300; }
"""

CORPORATE_TITLE_CSS = """
.layout-corporate-title { width: 100%; }
.corporate-header { display: flex; align-items: center; gap: 2rem; }
.header-bar { width: 8px; height: 120px; background: linear-gradient(180deg, var(--accent-1), var(--accent-3)); }
.corporate-title { font-size: 3.5rem; font-weight: 600; letter-spacing: 1px; }
"""

CORPORATE_CONTENT_CSS = """
.layout-corporate-content { width: 100%; }
.content-header { display: flex; align-items: center; gap: 1.5rem; margin-bottom: 2rem; }
.header-accent { width: 4px; height: 50px; background: var(--accent-1); }
.corporate-list { display: flex; flex-direction: column; gap: 1.8rem; }
.corporate-item { display: flex; align-items: flex-start; gap: 1.5rem; font-size: 1.3rem; color: var(--text-secondary); }
.corporate-item .item-bullet::before { content: "\\25B8"; color: var(--accent-1); font-weight: bold; }
"""


# ---------------------------------------------------------------------------
# catalog
# ---------------------------------------------------------------------------

DARK_PREMIUM = SlideTemplate(
    id="dark-premium",
    name="Dark Premium",
    description="Sophisticated dark design with vibrant gradients",
    theme="dark",
    css_variables=(
        ("--bg-primary", "#0f1419"),
        ("--bg-secondary", "#1a1f2e"),
        ("--text-primary", "#ffffff"),
        ("--text-secondary", "#b0b8c1"),
        ("--accent-1", "#7c5cff"),
        ("--accent-2", "#00d9ff"),
        ("--accent-3", "#ff006e"),
    ),
    layouts=(
        LayoutDefinition("title-centered", "Title Centered", "Centered, highlighted title",
                         LayoutCategory.TITLE_ONLY, _title_centered, TITLE_CENTERED_CSS),
        LayoutDefinition("title-content-left", "Content Left", "Title and bullets on the left",
                         LayoutCategory.TITLE_CONTENT, _content_left, CONTENT_LEFT_CSS),
        LayoutDefinition("two-column-split", "Two Column Split", "Content split into two columns",
                         LayoutCategory.TWO_COLUMN, _two_column, TWO_COLUMN_CSS),
    ),
)

GRADIENT_MODERN = SlideTemplate(
    id="gradient-modern",
    name="Gradient Modern",
    description="Modern design with dynamic gradients",
    theme="gradient",
    css_variables=(
        ("--bg-primary", "#ffffff"),
        ("--bg-secondary", "#f5f7fa"),
        ("--text-primary", "#1a202c"),
        ("--text-secondary", "#718096"),
        ("--accent-1", "#6366f1"),
        ("--accent-2", "#ec4899"),
        ("--accent-3", "#14b8a6"),
    ),
    layouts=(
        LayoutDefinition("hero-title", "Hero Title", "Hero title over a gradient background",
                         LayoutCategory.TITLE_ONLY, _hero_title, HERO_CSS),
        LayoutDefinition("content-right", "Content Right", "Clean content block on the right",
                         LayoutCategory.TITLE_CONTENT, _content_right, CONTENT_RIGHT_CSS),
        LayoutDefinition("list-decorated", "Decorated List", "Numbered, animated list",
                         LayoutCategory.LIST, _decorated_list, DECORATED_LIST_CSS),
    ),
)

MINIMAL_CLEAN = SlideTemplate(
    id="minimal-clean",
    name="Minimal Clean",
    description="Minimalist, clean design",
    theme="minimal",
    css_variables=(
        ("--bg-primary", "#fafafa"),
        ("--bg-secondary", "#f0f0f0"),
        ("--text-primary", "#000000"),
        ("--text-secondary", "#666666"),
        ("--accent-1", "#000000"),
        ("--accent-2", "#cccccc"),
        ("--accent-3", "#333333"),
    ),
    layouts=(
        LayoutDefinition("minimal-title", "Minimal Title", "Pure minimalist title",
                         LayoutCategory.TITLE_ONLY, _minimal_title, MINIMAL_TITLE_CSS),
        LayoutDefinition("content-simple", "Simple Content", "Simple, elegant content",
                         LayoutCategory.TITLE_CONTENT, _content_simple, CONTENT_SIMPLE_CSS),
    ),
)

CORPORATE_PROFESSIONAL = SlideTemplate(
    id="corporate-pro",
    name="Corporate Professional",
    description="Corporate, professional design",
    theme="dark",
    css_variables=(
        ("--bg-primary", "#1e3a5f"),
        ("--bg-secondary", "#2d4a73"),
        ("--text-primary", "#ffffff"),
        ("--text-secondary", "#b8c5d6"),
        ("--accent-1", "#3b82f6"),
        ("--accent-2", "#1e40af"),
        ("--accent-3", "#93c5fd"),
    ),
    layouts=(
        LayoutDefinition("corporate-title", "Corporate Title", "Corporate title with side bar",
                         LayoutCategory.TITLE_ONLY, _corporate_title, CORPORATE_TITLE_CSS),
        LayoutDefinition("corporate-content", "Corporate Content", "Structured corporate content",
                         LayoutCategory.TITLE_CONTENT, _corporate_content, CORPORATE_CONTENT_CSS),
    ),
)

ALL_TEMPLATES: Tuple[SlideTemplate, ...] = (
    DARK_PREMIUM,
    GRADIENT_MODERN,
    MINIMAL_CLEAN,
    CORPORATE_PROFESSIONAL,
)

_TEMPLATES_BY_ID: Dict[str, SlideTemplate] = {t.id: t for t in ALL_TEMPLATES}


def get_template(template_id: str) -> SlideTemplate:
    try:
        return _TEMPLATES_BY_ID[template_id]
    except KeyError:
        raise NotFoundError(f'Template "{template_id}" not found')


def template_catalog() -> List[Dict]:
    """Summary of every template for the public catalog endpoint"""
    return [
        {
            "id": t.id,
            "name": t.name,
            "description": t.description,
            "theme": t.theme,
            "layoutCount": len(t.layouts),
            "layouts": [
                {"id": l.id, "name": l.name, "category": l.category.value}
                for l in t.layouts
            ],
        }
        for t in ALL_TEMPLATES
    ]


def generate_template_css(template: SlideTemplate) -> str:
    """Variables, shared rules and the template's own layout rules, once each"""
    variables = "\n".join(f"  {name}: {value};" for name, value in template.css_variables)
    layout_css = "".join(layout.css for layout in template.layouts)
    return f":root {{\n{variables}\n}}\n{BASE_CSS}{layout_css}"


def select_layout(
    template: SlideTemplate,
    index: int,
    has_content: bool,
    mix_layouts: bool
) -> LayoutDefinition:
    """Pick the layout for the slide at 0-based index.

    Without mixing the first layout is used; with mixing layouts cycle by
    index. Slides carrying bullets only ever get content-capable layouts
    when the template has any.
    """
    candidates = template.layouts
    if has_content:
        content_layouts = tuple(l for l in template.layouts if is_content_capable(l))
        if content_layouts:
            candidates = content_layouts

    if mix_layouts:
        return candidates[index % len(candidates)]
    return candidates[0]
