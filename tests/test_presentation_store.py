"""
Tests for presentation persistence and normalize-on-read.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from slider_omni.backend.database import Database
from slider_omni.backend.errors import ConflictError
from slider_omni.backend.models import PresentationRecord, SlideContent
from slider_omni.backend.presentation_store import (
    InMemoryPresentationRepository, PresentationStore, SQLitePresentationRepository,
    extract_body, new_presentation_id, normalize_legacy_record
)
from slider_omni.backend.renderer import count_slide_containers, validate_presentation_html
from slider_omni.backend.users import SQLiteUserRepository, new_user_record

SIMPLE_HTML = (
    '<!DOCTYPE html><html><body>'
    '<div id="slide1" class="slide"></div><div id="slide2" class="slide"></div>'
    '<div id="slide3" class="slide"></div></body></html>'
)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryPresentationRepository()
    database = Database(str(tmp_path / "presentations.db"))
    # presentations reference their owner
    users = SQLiteUserRepository(database)
    users.add(new_user_record("alice", "alice@example.com", "pw"))
    users.add(new_user_record("bob", "bob@example.com", "pw"))
    return SQLitePresentationRepository(database)


@pytest.fixture
def store(repository, frozen_clock):
    return PresentationStore(repository, clock=frozen_clock)


def legacy_record(fragments):
    return PresentationRecord(
        id="pres-legacy-1",
        owner="alice",
        title="Old deck",
        slides=fragments,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestIds:
    def test_format(self, frozen_clock):
        presentation_id = new_presentation_id(frozen_clock)
        millis = int(frozen_clock().timestamp() * 1000)
        assert re.fullmatch(rf"pres-{millis}-[0-9a-z]{{7}}", presentation_id)

    def test_unique(self, frozen_clock):
        ids = {new_presentation_id(frozen_clock) for _ in range(200)}
        assert len(ids) == 200


class TestStore:
    def test_create_then_get(self, store):
        created = store.create("pres-1-aaaaaaa", "alice", "Remote Work", SIMPLE_HTML, 3, description="notes")
        fetched = store.get(created.id)
        assert fetched.html == SIMPLE_HTML
        assert fetched.slide_count == 3
        assert fetched.owner == "alice"
        assert fetched.description == "notes"
        assert fetched.created_at == created.created_at

    def test_raw_slides_kept_with_html(self, store):
        slides = [
            SlideContent(title="Remote Work"),
            SlideContent(title="Benefits", content=["Focus", "No commute"], notes="smile"),
            SlideContent(title="Risks", content=["Isolation"]),
        ]
        created = store.create("pres-1-aaaaaaa", "alice", "Remote Work", SIMPLE_HTML, 3, slides=slides)

        fetched = store.get(created.id)
        assert not fetched.is_legacy
        assert fetched.html == SIMPLE_HTML
        assert fetched.slides == [s.model_dump() for s in slides]
        assert fetched.slides[1] == {"title": "Benefits", "content": ["Focus", "No commute"], "notes": "smile"}

    def test_duplicate_id_conflicts(self, store):
        store.create("pres-1-aaaaaaa", "alice", "First", SIMPLE_HTML, 3)
        with pytest.raises(ConflictError):
            store.create("pres-1-aaaaaaa", "alice", "Again", SIMPLE_HTML, 3)

    def test_unknown_id_is_none(self, store):
        assert store.get("pres-0-missing") is None

    def test_list_for_owner_newest_first(self, store, frozen_clock):
        first = store.create("pres-1-first00", "alice", "First", SIMPLE_HTML, 3)
        frozen_clock.now = frozen_clock.now + timedelta(minutes=5)
        second = store.create("pres-2-second0", "alice", "Second", SIMPLE_HTML, 3)
        store.create("pres-3-other00", "bob", "Other", SIMPLE_HTML, 3)

        summaries = store.list_for_owner("alice")
        assert [s.id for s in summaries] == [second.id, first.id]
        assert summaries[0].model_dump(by_alias=True)["slideCount"] == 3

    def test_list_for_unknown_owner(self, store):
        assert store.list_for_owner("nobody") == []


# ---------------------------------------------------------------------------
# normalize-on-read
# ---------------------------------------------------------------------------

class TestExtractBody:
    def test_body_inner_html(self):
        assert extract_body("<html><body class='x'><h1>Hi</h1></body></html>") == "<h1>Hi</h1>"

    def test_document_wrapper_stripped(self):
        fragment = "<!DOCTYPE html><html><head><title>t</title></head><h1>Hi</h1></html>"
        assert extract_body(fragment).strip() == "<h1>Hi</h1>"

    def test_bare_fragment_unchanged(self):
        assert extract_body("<p>plain</p>") == "<p>plain</p>"


class TestNormalize:
    def test_legacy_fragments_become_one_document(self):
        record = legacy_record([
            {"id": "a", "title": "One", "htmlContent": "<html><body><h1>One</h1></body></html>", "order": 1},
            {"id": "b", "title": "Two", "html": "<h1>Two</h1>", "order": 2},
            {"id": "c", "title": "Three", "htmlContent": "<h1>Three</h1>", "order": 3},
        ])
        normalized = normalize_legacy_record(record)

        assert normalized.slide_count == 3
        assert normalized.slides is None
        validate_presentation_html(normalized.html, 3)
        assert '<div id="slide1" class="slide" data-order="1">' in normalized.html
        assert normalized.html.count('<div class="card">') == 3
        assert "<h1>One</h1>" in normalized.html
        assert "'slide1'" in normalized.html

    def test_fragments_ordered_by_order_field(self):
        record = legacy_record([
            {"htmlContent": "<p>second</p>", "order": 2},
            {"htmlContent": "<p>first</p>", "order": 1},
        ])
        html = normalize_legacy_record(record).html
        assert html.index("<p>first</p>") < html.index("<p>second</p>")

    def test_mixed_order_values(self):
        record = legacy_record([
            {"htmlContent": "<p>second</p>", "order": "2"},
            {"htmlContent": "<p>first</p>", "order": 1},
            {"htmlContent": "<p>third</p>"},
            {"htmlContent": "<p>last</p>", "order": "not a number"},
        ])
        normalized = normalize_legacy_record(record)
        html = normalized.html

        assert normalized.slide_count == 4
        validate_presentation_html(html, 4)
        # missing or unparseable orders fall back to the list position
        assert html.index("<p>first</p>") < html.index("<p>second</p>") < html.index("<p>third</p>")
        assert html.index("<p>third</p>") < html.index("<p>last</p>")

    def test_nested_slide_ids_do_not_add_containers(self, store, repository):
        repository.create(legacy_record([
            {"htmlContent": '<html><body><div id="slide1" class="slide"><h1>One</h1></div></body></html>', "order": 1},
            {"htmlContent": "<div id='slide7' class='slide'><h1>Two</h1></div>", "order": 2},
        ]))

        fetched = store.get("pres-legacy-1")
        assert fetched.slide_count == 2
        assert count_slide_containers(fetched.html) == 2
        validate_presentation_html(fetched.html, 2)
        assert 'data-source-id="slide1"' in fetched.html
        assert "data-source-id='slide7'" in fetched.html

    def test_get_normalizes_and_writes_back(self, store, repository):
        repository.create(legacy_record([
            {"htmlContent": "<h1>One</h1>"},
            {"htmlContent": "<h1>Two</h1>"},
            {"htmlContent": "<h1>Three</h1>"},
            {"htmlContent": "<h1>Four</h1>"},
        ]))

        fetched = store.get("pres-legacy-1")
        assert fetched.slide_count == 4
        assert count_slide_containers(fetched.html) == 4

        stored = repository.get_raw("pres-legacy-1")
        assert stored.html == fetched.html
        assert not stored.is_legacy

    def test_failed_write_back_still_returns_record(self, store, repository, monkeypatch):
        repository.create(legacy_record([{"htmlContent": "<h1>Only</h1>"}]))

        def broken_replace(record):
            raise RuntimeError("disk full")

        monkeypatch.setattr(repository, "replace", broken_replace)
        fetched = store.get("pres-legacy-1")
        assert fetched.slide_count == 1
        assert repository.get_raw("pres-legacy-1").is_legacy

    def test_canonical_records_untouched(self, store, repository, monkeypatch):
        created = store.create("pres-1-aaaaaaa", "alice", "Remote Work", SIMPLE_HTML, 3)
        monkeypatch.setattr(repository, "replace", lambda record: pytest.fail("unexpected write"))
        assert store.get(created.id).html == SIMPLE_HTML
