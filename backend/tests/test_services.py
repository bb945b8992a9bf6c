"""Blob storage, translation provider fallback, TTS and in-memory cache tests"""
import pytest

import api_cache
import config
import openai_service
import storage
import translation_service
import tts_service
from storage import BlobStorage, StorageError, parse_connection_string
from translation_service import TranslationError

CONNECTION_STRING = (
    'DefaultEndpointsProtocol=https;AccountName=taajamedia;'
    'AccountKey=c2VjcmV0LWtleQ==;EndpointSuffix=core.windows.net'
)


class TestBlobStorage:
    def test_key_keeps_padding(self):
        parts = parse_connection_string(CONNECTION_STRING)
        assert parts['AccountKey'] == 'c2VjcmV0LWtleQ=='
        assert parts['AccountName'] == 'taajamedia'

    def test_ignores_empty_segments(self):
        assert parse_connection_string('AccountName=a;;junk;') == {'AccountName': 'a'}
        assert parse_connection_string(None) == {}

    def test_blob_url_from_account(self, monkeypatch):
        monkeypatch.setattr(config, 'AZURE_STORAGE_URL', '')
        blob = BlobStorage(CONNECTION_STRING, container='media', public_url='')
        assert blob.configured
        assert blob.blob_url('images/a.png') == 'https://taajamedia.blob.core.windows.net/media/images/a.png'

    def test_public_url_override(self):
        blob = BlobStorage(CONNECTION_STRING, container='media', public_url='https://cdn.example.com/')
        assert blob.blob_url('images/a.png') == 'https://cdn.example.com/media/images/a.png'

    def test_generate_sas(self, monkeypatch):
        captured = {}

        def fake_generate_blob_sas(**kwargs):
            captured.update(kwargs)
            return 'sv=2024&sig=abc'

        monkeypatch.setattr(storage, 'generate_blob_sas', fake_generate_blob_sas)
        blob = BlobStorage(CONNECTION_STRING, container='media', public_url='')
        upload = blob.get_upload_url('photo.jpg', 'image/jpeg')

        assert captured['account_name'] == 'taajamedia'
        assert captured['account_key'] == 'c2VjcmV0LWtleQ=='
        assert captured['container_name'] == 'media'
        assert captured['blob_name'] == upload['blob_name']
        assert captured['permission'].create and captured['permission'].write
        assert not captured['permission'].read
        assert upload['upload_url'] == f"{upload['blob_url']}?sv=2024&sig=abc"

        assert blob.get_read_url('images/a.png').endswith('/media/images/a.png?sv=2024&sig=abc')
        assert captured['permission'].read

    def test_unconfigured(self):
        blob = BlobStorage('', container='media', public_url='https://cdn.example.com')
        assert not blob.configured
        for call in (lambda: blob.generate_sas('images/a.png', 'r', 5),
                     lambda: blob.upload_bytes('images/a.png', b'x', 'image/png'),
                     lambda: blob.delete_blob('images/a.png')):
            with pytest.raises(StorageError) as exc:
                call()
            assert exc.value.status == 503


class TestTranslationFallback:
    @pytest.fixture
    def google_down(self, monkeypatch):
        def failing(text, source, target):
            raise TranslationError('Translation failed: timeout')

        monkeypatch.setattr(translation_service, 'translate_text', failing)

    def test_falls_back_to_openai(self, monkeypatch, google_down):
        calls = []

        def fake_fields(texts, source, target):
            calls.append((source, target))
            return {name: f"[{target}] {text}" for name, text in texts.items()}

        monkeypatch.setattr(openai_service, 'is_available', lambda: True)
        monkeypatch.setattr(openai_service, 'translate_fields', fake_fields)

        result = translation_service._translate_batch({'title': 'Rain'}, 'en', 'hi', 'google')
        assert result == {'title': '[hi] Rain'}
        assert calls == [('en', 'hi')]

    def test_no_openai_reraises(self, monkeypatch, google_down):
        monkeypatch.setattr(openai_service, 'is_available', lambda: False)
        with pytest.raises(TranslationError, match='timeout'):
            translation_service._translate_batch({'title': 'Rain'}, 'en', 'hi', 'google')

    def test_openai_rate_limit_is_429(self, monkeypatch, google_down):
        def limited(texts, source, target):
            raise openai_service.OpenAIRateLimited('slow down')

        monkeypatch.setattr(openai_service, 'is_available', lambda: True)
        monkeypatch.setattr(openai_service, 'translate_fields', limited)
        with pytest.raises(TranslationError) as exc:
            translation_service._translate_batch({'title': 'Rain'}, 'en', 'hi', 'google')
        assert exc.value.status == 429

    def test_openai_first_then_google(self, monkeypatch):
        def unavailable(texts, source, target):
            raise openai_service.OpenAIUnavailable('bad response')

        monkeypatch.setattr(openai_service, 'is_available', lambda: True)
        monkeypatch.setattr(openai_service, 'translate_fields', unavailable)
        monkeypatch.setattr(translation_service, 'translate_text', lambda text, source, target: f"g:{text}")

        result = translation_service._translate_batch({'title': 'Rain'}, 'en', 'te', 'openai')
        assert result == {'title': 'g:Rain'}


class TestArticleAudio:
    @pytest.fixture
    def fake_voice(self, monkeypatch):
        spoken = []

        def fake_synthesize(text, voice):
            spoken.append((voice, text))
            return b'ID3' + text.encode()

        monkeypatch.setattr(tts_service, 'synthesize_to_bytes', fake_synthesize)
        return spoken

    def test_uploads_one_file_per_voiced_language(self, fake_storage, fake_voice):
        voices = {'en': 'en-IN-NeerjaNeural', 'te': 'te-IN-ShrutiNeural'}
        texts = {'en': '<p>Rain **alert**</p>', 'te': 'వర్ష హెచ్చరిక', 'fr': 'Alerte pluie'}

        urls = tts_service.synthesize_article_audio(texts, basename='Rain Alert', voices=voices)

        assert set(urls) == {'en', 'te'}
        assert [voice for voice, _ in fake_voice] == ['en-IN-NeerjaNeural', 'te-IN-ShrutiNeural']
        assert fake_voice[0][1] == 'Rain alert'
        for lang, url in urls.items():
            blob_name = url.split('/media/', 1)[1]
            assert blob_name.startswith(f"audio/rain-alert-{lang}-") and blob_name.endswith('.mp3')
            assert blob_name in fake_storage.blobs

    def test_blank_text_skipped(self, fake_storage, fake_voice):
        urls = tts_service.synthesize_article_audio({'en': '<br>  '}, voices={'en': 'en-IN-NeerjaNeural'})
        assert urls == {}
        assert fake_voice == []

    def test_default_stem(self, fake_storage, fake_voice):
        urls = tts_service.synthesize_article_audio({'en': 'Hello'}, voices={'en': 'en-IN-NeerjaNeural'})
        assert '/audio/article-en-' in urls['en']

    def test_clean_text(self):
        assert tts_service.clean_text_for_tts('<h1># Title</h1>\nBody *text*') == 'Title . Body text'


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(api_cache.time, 'monotonic', fake)
    return fake


class TestResponseCache:
    def test_expired_entry_is_a_miss(self, clock):
        cache = api_cache.ResponseCache()
        cache.put('articles:a', {'n': 1}, ttl=30)
        assert cache.get('articles:a') == {'n': 1}
        clock.now += 31
        assert cache.get('articles:a') is None
        assert cache.stats() == {'entries': 0, 'hits': 1, 'misses': 1}

    def test_put_sweeps_expired_entries(self, clock):
        cache = api_cache.ResponseCache()
        for i in range(50):
            cache.put(f"articles:{i}", {'n': i}, ttl=10)
        clock.now += 11
        cache.put('articles:fresh', {'n': 'fresh'}, ttl=10)
        assert len(cache) == 1
        assert cache.get('articles:fresh') == {'n': 'fresh'}

    def test_drop_prefix(self, clock):
        cache = api_cache.ResponseCache()
        cache.put('categories:a', 1, ttl=60)
        cache.put('articles:a', 2, ttl=60)
        assert cache.drop_prefix('categories:') == 1
        assert cache.get('articles:a') == 2


class TestIpRateLimiter:
    def test_blocks_after_limit(self, clock):
        limiter = api_cache.IpRateLimiter()
        assert limiter.hit('10.0.0.1', limit=2, window_seconds=60)
        assert limiter.hit('10.0.0.1', limit=2, window_seconds=60)
        assert not limiter.hit('10.0.0.1', limit=2, window_seconds=60)
        assert limiter.hit('10.0.0.2', limit=2, window_seconds=60)
        clock.now += 60
        assert limiter.hit('10.0.0.1', limit=2, window_seconds=60)

    def test_idle_clients_are_forgotten(self, clock):
        limiter = api_cache.IpRateLimiter()
        for i in range(100):
            limiter.hit(f"10.0.1.{i}", limit=5, window_seconds=60)
        assert len(limiter) == 100
        clock.now += 61
        limiter.hit('10.0.2.1', limit=5, window_seconds=60)
        assert len(limiter) == 1
        assert limiter.stats() == {'clients': 1}
