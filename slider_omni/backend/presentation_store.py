# presentation persistence with normalize-on-read for the legacy fragment layout
import re
import json
import logging
import secrets
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from .database import Database, utcnow, to_db_time, from_db_time
from .errors import PersistenceError, ConflictError
from .models import PresentationRecord, PresentationSummary, SlideContent
from .renderer import validate_presentation_html

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

_BODY = re.compile(r"<body[^>]*>([\s\S]*?)</body>", re.IGNORECASE)
_DOCTYPE = re.compile(r"<!doctype[^>]*>", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html[^>]*>", re.IGNORECASE)
_HTML_CLOSE = re.compile(r"</html>", re.IGNORECASE)
_HEAD = re.compile(r"<head[\s\S]*?</head>", re.IGNORECASE)
# slide ids nested inside a fragment would collide with the rebuilt containers
_NESTED_SLIDE_ID = re.compile(r"\bid\s*=\s*([\"'])(slide\d+)\1", re.IGNORECASE)

LEGACY_BASE_STYLES = """
:root { --bg: #0b1020; --fg: #e6eef8; --accent: #7c5cff; }
html, body { height: 100%; width: 100%; margin: 0; padding: 0; overflow: hidden; background: var(--bg); color: var(--fg); font-family: Inter, ui-sans-serif, system-ui, -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; }
.slide { position: absolute; top: 0; left: 0; width: 100vw; height: 100vh; padding: 48px; box-sizing: border-box; display: none; align-items: center; justify-content: center; z-index: 1; }
.slide.active { display: flex; z-index: 10; }
.card .slide { position: static; display: block; width: auto; height: auto; padding: 0; }
.card { max-width: 1200px; width: 100%; border-radius: 16px; padding: 40px; background: linear-gradient(180deg, rgba(255,255,255,0.03), rgba(255,255,255,0.01)); box-shadow: 0 10px 30px rgba(2,6,23,0.6); }
h1 { margin: 0 0 16px; font-size: 2.25rem; }
p, li { color: var(--fg); line-height: 1.5; }
ul { padding-left: 1.1rem; }
"""

LEGACY_ACTIVATION_SCRIPT = """<script>
(function() {
  var slides = document.querySelectorAll('[id^="slide"]');
  for (var i = 0; i < slides.length; i++) {
    if (!/^slide\\d+$/.test(slides[i].id)) {
      continue;
    }
    if (slides[i].id === 'slide1') {
      slides[i].classList.add('active');
    } else {
      slides[i].classList.remove('active');
    }
  }
})();
</script>"""


def new_presentation_id(clock: Callable[[], datetime] = utcnow) -> str:
    """pres-<epoch millis>-<7 random base36 chars>"""
    millis = int(clock().timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"pres-{millis}-{suffix}"


def extract_body(fragment: str) -> str:
    """Inner html of <body>, or the fragment without its document wrapper"""
    match = _BODY.search(fragment)
    if match and match.group(1):
        return match.group(1)
    text = _DOCTYPE.sub("", fragment, count=1)
    text = _HTML_OPEN.sub("", text, count=1)
    text = _HTML_CLOSE.sub("", text, count=1)
    return _HEAD.sub("", text, count=1)


def _fragment_html(slide: Dict) -> str:
    return str(slide.get("htmlContent") or slide.get("html") or "")


def _fragment_order(slide: Dict, position: int) -> int:
    """Stored order as an int; missing or unparseable orders keep list position"""
    try:
        return int(slide.get("order"))
    except (TypeError, ValueError):
        return position + 1


def _fragment_body(slide: Dict) -> str:
    body = extract_body(_fragment_html(slide))
    return _NESTED_SLIDE_ID.sub(r"data-source-id=\1\2\1", body)


def normalize_legacy_record(record: PresentationRecord) -> PresentationRecord:
    """Combine per-slide fragments into one document with slide1..slideN containers"""
    fragments = sorted(
        enumerate(record.slides or []),
        key=lambda pair: (_fragment_order(pair[1], pair[0]), pair[0]),
    )
    sections = []
    for n, (_, slide) in enumerate(fragments, start=1):
        sections.append(
            f'<div id="slide{n}" class="slide" data-order="{n}">\n'
            f'<div class="card">\n{_fragment_body(slide)}\n</div>\n</div>'
        )

    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width,initial-scale=1" />
<style>{LEGACY_BASE_STYLES}</style>
</head>
<body>
{chr(10).join(sections)}
{LEGACY_ACTIVATION_SCRIPT}
</body>
</html>"""

    validate_presentation_html(html, len(sections))
    return record.model_copy(update={
        "html": html,
        "slide_count": len(sections),
        "slides": None,
        "updated_at": utcnow(),
    })


# storage interface
class PresentationRepository(ABC):
    """Raw presentation storage; no normalization happens here"""

    @abstractmethod
    def create(self, record: PresentationRecord) -> PresentationRecord:
        pass

    @abstractmethod
    def get_raw(self, presentation_id: str) -> Optional[PresentationRecord]:
        pass

    @abstractmethod
    def replace(self, record: PresentationRecord):
        pass

    @abstractmethod
    def list_for_owner(self, owner: str) -> List[PresentationRecord]:
        """Owner's records, newest first"""
        pass


# sqlite-backed presentations
class SQLitePresentationRepository(PresentationRepository):
    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _row_to_record(row) -> PresentationRecord:
        slides = json.loads(row["slides"]) if row["slides"] else None
        return PresentationRecord(
            id=row["id"],
            owner=row["owner"],
            title=row["title"] or "",
            description=row["description"] or "",
            html=row["html"],
            slide_count=row["slide_count"],
            slides=slides,
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )

    @staticmethod
    def _params(record: PresentationRecord):
        return (
            record.owner,
            record.title,
            record.description,
            record.html,
            record.slide_count,
            json.dumps(record.slides) if record.slides is not None else None,
            to_db_time(record.created_at),
            to_db_time(record.updated_at),
            record.id,
        )

    def create(self, record: PresentationRecord) -> PresentationRecord:
        try:
            with self.database.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO presentations (owner, title, description, html, slide_count,
                                               slides, created_at, updated_at, id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    self._params(record),
                )
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"presentation {record.id} already exists", cause=e)
        except sqlite3.Error as e:
            raise PersistenceError("could not store presentation", cause=e, context={"id": record.id})
        return record

    def get_raw(self, presentation_id: str) -> Optional[PresentationRecord]:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM presentations WHERE id = ?", (presentation_id,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def replace(self, record: PresentationRecord):
        try:
            with self.database.transaction() as conn:
                conn.execute(
                    """
                    UPDATE presentations
                    SET owner = ?, title = ?, description = ?, html = ?, slide_count = ?,
                        slides = ?, created_at = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    self._params(record),
                )
        except sqlite3.Error as e:
            raise PersistenceError("could not update presentation", cause=e, context={"id": record.id})

    def list_for_owner(self, owner: str) -> List[PresentationRecord]:
        with self.database.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM presentations WHERE owner = ? ORDER BY created_at DESC, id DESC",
                (owner,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]


# process-local presentations
class InMemoryPresentationRepository(PresentationRepository):
    def __init__(self):
        self._records: Dict[str, PresentationRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: PresentationRecord) -> PresentationRecord:
        with self._lock:
            if record.id in self._records:
                raise ConflictError(f"presentation {record.id} already exists")
            self._records[record.id] = record.model_copy(deep=True)
        return record

    def get_raw(self, presentation_id: str) -> Optional[PresentationRecord]:
        with self._lock:
            record = self._records.get(presentation_id)
        return record.model_copy(deep=True) if record else None

    def replace(self, record: PresentationRecord):
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    def list_for_owner(self, owner: str) -> List[PresentationRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.owner == owner]
        records.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [r.model_copy(deep=True) for r in records]


# presentation store
class PresentationStore:
    def __init__(self, repository: PresentationRepository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.clock = clock

    def create(
        self,
        presentation_id: str,
        owner: str,
        title: str,
        html: str,
        slide_count: int,
        description: str = "",
        slides: Optional[Sequence[SlideContent]] = None
    ) -> PresentationRecord:
        """Store a rendered document together with the slide records it came from"""
        now = self.clock()
        raw_slides: Optional[List[Dict[str, Any]]] = None
        if slides is not None:
            raw_slides = [slide.model_dump() for slide in slides]
        record = PresentationRecord(
            id=presentation_id,
            owner=owner,
            title=title,
            description=description or "",
            html=html,
            slide_count=slide_count,
            slides=raw_slides,
            created_at=now,
            updated_at=now,
        )
        self.repository.create(record)
        logger.info(f"✓ Stored presentation {record.id} ({slide_count} slides) for {owner}")
        return record

    def get(self, presentation_id: str) -> Optional[PresentationRecord]:
        """Fetch a record in canonical html form; None for unknown ids"""
        record = self.repository.get_raw(presentation_id)
        if record is None or not record.is_legacy:
            return record

        logger.info(f"Normalizing legacy presentation {presentation_id}")
        normalized = normalize_legacy_record(record)
        try:
            self.repository.replace(normalized)
        except Exception as e:
            logger.warning(f"Could not write back normalized presentation {presentation_id}: {e}")
        return normalized

    def list_for_owner(self, owner: str) -> List[PresentationSummary]:
        return [
            PresentationSummary(
                id=r.id,
                title=r.title,
                description=r.description,
                slide_count=r.slide_count if r.slide_count is not None else len(r.slides or []),
                created_at=r.created_at,
                updated_at=r.updated_at,
            )
            for r in self.repository.list_for_owner(owner)
        ]
