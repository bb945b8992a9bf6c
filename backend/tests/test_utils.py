"""Pure helper tests: slugs, geo math, chunking, workflow and localization"""
import pytest

import language_cache
import workflow
from localization import localize, localize_category
from models import Language
from translation_service import chunk_text
from utils import (
    bounding_box, haversine_m, hostname_from_url, pagination_meta, parse_bool, parse_int, point_in_polygon, slugify,
)

HYDERABAD = (78.4867, 17.3850)
VIJAYAWADA = (80.6480, 16.5062)

SQUARE = {'type': 'Polygon', 'coordinates': [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]]}
SQUARE_WITH_HOLE = {
    'type': 'Polygon',
    'coordinates': [
        [[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]],
        [[4, 4], [6, 4], [6, 6], [4, 6], [4, 4]],
    ],
}


class TestSlugify:
    def test_basic(self):
        assert slugify('Hello,  World!') == 'hello-world'

    def test_collapses_hyphens(self):
        assert slugify(' -- Breaking -- News -- ') == 'breaking-news'

    def test_transliterates(self):
        slug = slugify('हैदराबाद')
        assert slug and slug.isascii()

    def test_without_transliteration_drops_non_ascii(self):
        assert slugify('హైదరాబాద్', transliterate=False) == ''

    def test_empty(self):
        assert slugify(None) == ''


class TestParsing:
    def test_parse_bool(self):
        assert parse_bool('true') is True
        assert parse_bool('0') is False
        assert parse_bool(None, True) is True

    def test_parse_int_clamps(self):
        assert parse_int('500', 20, minimum=1, maximum=100) == 100
        assert parse_int('abc', 20) == 20
        assert parse_int('-3', 1, minimum=1) == 1

    def test_pagination_meta(self):
        assert pagination_meta(2, 20, 41) == {'page': 2, 'limit': 20, 'total': 41, 'pages': 3}

    def test_hostname_from_url(self):
        assert hostname_from_url('https://www.example.com/path?q=1') == 'www.example.com'
        assert hostname_from_url('not a url') == 'unknown'


class TestGeo:
    def test_haversine_zero(self):
        assert haversine_m(*HYDERABAD, *HYDERABAD) == 0

    def test_haversine_known_distance(self):
        meters = haversine_m(*HYDERABAD, *VIJAYAWADA)
        assert 230000 < meters < 270000

    def test_bounding_box_contains_radius(self):
        min_lng, min_lat, max_lng, max_lat = bounding_box(*HYDERABAD, 10000)
        assert min_lng < HYDERABAD[0] < max_lng
        assert min_lat < HYDERABAD[1] < max_lat
        # A point 9 km due north is inside the box
        assert max_lat - HYDERABAD[1] > 9000 / 111320

    def test_point_in_polygon(self):
        assert point_in_polygon(5, 5, SQUARE)
        assert not point_in_polygon(15, 5, SQUARE)

    def test_point_in_hole_is_outside(self):
        assert not point_in_polygon(5, 5, SQUARE_WITH_HOLE)
        assert point_in_polygon(2, 2, SQUARE_WITH_HOLE)

    def test_empty_polygon(self):
        assert not point_in_polygon(1, 1, None)


class TestChunkText:
    def test_short_text_is_one_chunk(self):
        assert chunk_text('Hello world.', 100) == ['Hello world.']

    def test_chunks_respect_limit_and_preserve_text(self):
        text = ' '.join(f"Sentence number {i} is here." for i in range(200))
        chunks = chunk_text(text, 120)
        assert ''.join(chunks) == text
        assert all(len(chunk) <= 120 for chunk in chunks)

    def test_unbroken_text_is_hard_split(self):
        text = 'x' * 1000
        chunks = chunk_text(text, 300)
        assert ''.join(chunks) == text
        assert max(len(c) for c in chunks) <= 300

    def test_empty(self):
        assert chunk_text('', 100) == []

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            chunk_text('abc', 0)


class TestWorkflow:
    def test_reporter_cannot_publish_on_create(self):
        assert workflow.initial_status('reporter', 'published') == 'draft'
        assert workflow.initial_status('reporter', 'pending') == 'pending'
        assert workflow.initial_status('admin', 'published') == 'published'

    def test_reporter_transitions(self):
        assert workflow.can_transition('reporter', 'draft', 'pending')
        assert workflow.can_transition('reporter', 'pending', 'draft')
        assert workflow.can_transition('reporter', 'archived', 'pending')
        assert not workflow.can_transition('reporter', 'pending', 'published')
        assert not workflow.can_transition('reporter', 'published', 'archived')

    def test_admin_any_known_status(self):
        assert workflow.can_transition('admin', 'draft', 'published')
        assert not workflow.can_transition('admin', 'draft', 'deleted')

    def test_submit(self):
        assert workflow.can_submit('draft')
        assert not workflow.can_submit('published')


class TestLocalization:
    def test_requested_language(self):
        assert localize({'en': 'Sports', 'hi': 'खेल'}, 'hi', 'en') == 'खेल'

    def test_falls_back_to_default(self):
        assert localize({'en': 'Sports', 'hi': 'खेल'}, 'fr', 'en') == 'Sports'

    def test_falls_back_to_any_value(self):
        assert localize({'hi': 'खेल', 'en': ''}, 'fr', 'en') == 'खेल'

    def test_empty(self):
        assert localize({}, 'en') == ''
        assert localize(None, 'en') == ''

    def test_category_keeps_multilingual(self):
        data = {'name': {'en': 'Sports', 'te': 'క్రీడలు'}, 'description': {}, 'ancestors': []}
        out = localize_category(data, 'te', 'en')
        assert out['name'] == 'క్రీడలు'
        assert out['_multilingual']['name'] == data['name']


class TestLanguageCache:
    def test_default_and_active(self, db):
        db.add(Language(code='te', name='Telugu', native_name='తెలుగు', order=2))
        db.add(Language(code='xx', name='Hidden', native_name='Hidden', is_active=False))
        db.commit()
        language_cache.invalidate()

        assert language_cache.get_default_language_code(db) == 'en'
        assert language_cache.get_active_language_codes(db) == ['en', 'te']
        assert language_cache.is_valid_language_code(db, 'te')
        assert not language_cache.is_valid_language_code(db, 'xx')

    def test_fallback_when_no_languages(self, db):
        db.query(Language).delete()
        db.commit()
        language_cache.clear()
        assert language_cache.get_default_language(db)['code'] == 'en'

    def test_first_active_when_no_default(self, db):
        db.query(Language).delete()
        db.add(Language(code='hi', name='Hindi', native_name='हिन्दी', order=1))
        db.commit()
        language_cache.clear()
        assert language_cache.get_default_language_code(db) == 'hi'
