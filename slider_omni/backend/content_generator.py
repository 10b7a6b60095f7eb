# generates structured slide content (title + bullets + notes) from a topic
import json
import logging
from typing import List, Optional, Protocol

from pydantic import ValidationError

from .errors import ContentGenerationError, ContentParseError
from .models import GeneratedContent, SlideContent

logger = logging.getLogger(__name__)


class TextGenerationModel(Protocol):
    def generate_text(self, prompt: str, max_tokens: int = 4000, temperature: float = 0.7) -> str:
        ...


def build_slide_prompt(topic: str, description: str, slide_count: int) -> str:
    """Single instruction asking for exactly slide_count records as a JSON array"""
    context = f"Additional context: {description}\n" if description else ""
    return f"""You are an expert at creating professional presentations.

Topic: "{topic}"
{context}Number of slides: {slide_count}

Create a presentation structure with EXACTLY {slide_count} slides.

For each slide, provide:
1. A clear, impactful title
2. Relevant content (2-4 key points)
3. Optional speaker notes

Return ONLY valid JSON, with no additional text:
[
  {{
    "title": "Slide title",
    "content": ["Point 1", "Point 2", "Point 3"],
    "notes": "Optional notes"
  }}
]"""


def extract_json_array(text: str) -> Optional[str]:
    """Return the first bracket-balanced [...] substring of text.

    Brackets inside JSON string literals are ignored, so prose or code fences
    around the array do not matter. Returns None when no balanced array exists.
    """
    start = text.find("[")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "[":
                depth += 1
            elif ch == "]":
                depth -= 1
                if depth == 0:
                    return text[start:idx + 1]
        # unbalanced from this bracket; try the next one
        start = text.find("[", start + 1)
    return None


def parse_slide_records(text: str) -> List[SlideContent]:
    """Parse model output into slide records"""
    array_text = extract_json_array(text or "")
    if array_text is None:
        raise ContentGenerationError("No JSON array found in model response")

    try:
        data = json.loads(array_text)
    except json.JSONDecodeError as e:
        raise ContentParseError("Model response contains an invalid JSON array", cause=e)

    if not isinstance(data, list):
        raise ContentParseError("Model response is not a list of slides")
    if not data:
        raise ContentParseError("Model returned an empty slide list")

    try:
        return [SlideContent.model_validate(item) for item in data]
    except ValidationError as e:
        raise ContentParseError("Model response does not match the slide record shape", cause=e)


# content generator
class ContentGenerator:
    def __init__(self, max_tokens: int = 4000, temperature: float = 0.7):
        self.max_tokens = max_tokens
        self.temperature = temperature

    def generate_slide_content(
        self,
        topic: str,
        description: str,
        slide_count: int,
        model: TextGenerationModel
    ) -> GeneratedContent:
        """Ask the model for slide_count slides; one call, no retry"""
        logger.info(f"Generating content for {slide_count} slides on '{topic}'")

        prompt = build_slide_prompt(topic, description or "", slide_count)
        text = model.generate_text(prompt, max_tokens=self.max_tokens, temperature=self.temperature)
        slides = parse_slide_records(text)

        warnings = []
        if len(slides) != slide_count:
            # records are kept as returned; the caller sees the mismatch
            message = f"Expected {slide_count} slides, model returned {len(slides)}"
            logger.warning(f"⚠️ {message}")
            warnings.append(message)

        return GeneratedContent(slides=slides, warnings=warnings)
