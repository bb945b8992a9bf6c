"""Engagement, language, upload, translation and scraped article endpoint tests"""
import io
from datetime import datetime, timedelta

import pytest

import config
import scraped_article_routes
import storage
import translate_routes
import tts_service
from models import Article, Comment, Language
from translation_service import TranslationError


class TestEngagementApi:
    def test_view_deduplicated_by_session(self, client, make_article):
        article = make_article()
        first = client.post(f"/api/engagement/view/{article.id}", json={'session_id': 'abc'})
        second = client.post(f"/api/engagement/view/{article.id}", json={'session_id': 'abc'})
        assert first.get_json() == {'recorded': True, 'views': 1}
        assert second.get_json() == {'recorded': False, 'views': 1}

    def test_view_unknown_article(self, client):
        res = client.post('/api/engagement/view/999', json={'session_id': 'abc'})
        assert res.status_code == 404

    def test_like_requires_login(self, client, make_article):
        article = make_article()
        assert client.post(f"/api/engagement/like/{article.id}").status_code == 401

    def test_like_then_dislike(self, client, make_user, auth_headers, make_article):
        article = make_article()
        headers = auth_headers(make_user())
        liked = client.post(f"/api/engagement/like/{article.id}", headers=headers).get_json()
        assert liked == {'action': 'liked', 'likes': 1, 'dislikes': 0}
        disliked = client.post(f"/api/engagement/dislike/{article.id}", headers=headers).get_json()
        assert disliked == {'action': 'disliked', 'likes': 0, 'dislikes': 1}
        undone = client.post(f"/api/engagement/dislike/{article.id}", headers=headers).get_json()
        assert undone['action'] == 'undisliked'

        status = client.get(f"/api/engagement/status/{article.id}", headers=headers).get_json()['status']
        assert status['liked'] is False and status['disliked'] is False

    def test_share_once(self, client, make_user, auth_headers, make_article):
        article = make_article()
        headers = auth_headers(make_user())
        assert client.post(f"/api/engagement/share/{article.id}", headers=headers).get_json()['shares'] == 1
        again = client.post(f"/api/engagement/share/{article.id}", headers=headers).get_json()
        assert again == {'message': 'Share already recorded', 'shares': 1}

    def test_bookmarks_list_published_only(self, client, db, make_user, auth_headers, make_article):
        headers = auth_headers(make_user())
        first = make_article('First bookmarked story')
        second = make_article('Second bookmarked story')
        for article in (first, second):
            res = client.post(f"/api/engagement/bookmark/{article.id}", headers=headers)
            assert res.get_json()['action'] == 'bookmarked'

        second.status = 'archived'
        db.commit()
        body = client.get('/api/engagement/bookmarks', headers=headers).get_json()
        assert [a['id'] for a in body['articles']] == [first.id]

    def test_comment_with_invalid_parent(self, client, make_user, auth_headers, make_article):
        article = make_article()
        res = client.post(f"/api/engagement/comments/{article.id}", json={'content': 'Nice', 'parent': 999},
                          headers=auth_headers(make_user()))
        assert res.status_code == 400
        assert res.get_json()['error'] == 'Invalid parent comment'

    def test_comment_moderation_flow(self, client, db, make_user, reporter, auth_headers, make_article):
        article = make_article()
        reader = make_user()
        res = client.post(f"/api/engagement/comments/{article.id}", json={'content': 'Great coverage'},
                          headers=auth_headers(reader))
        assert res.status_code == 201
        comment_id = res.get_json()['comment']['id']
        db.expire_all()
        assert db.get(Article, article.id).comments_count == 1

        res = client.put(f"/api/engagement/comments/{comment_id}/moderate", json={'status': 'flagged'},
                         headers=auth_headers(reporter))
        assert res.status_code == 200
        db.expire_all()
        assert db.get(Article, article.id).comments_count == 0

        res = client.put(f"/api/engagement/comments/{comment_id}/moderate", json={'status': 'pending'},
                         headers=auth_headers(reporter))
        assert res.status_code == 400

    def test_pending_list(self, client, db, make_user, reporter, auth_headers, make_article):
        article = make_article()
        db.add(Comment(article_id=article.id, user_id=make_user().id, content='Awaiting review', status='pending'))
        db.commit()
        pending = client.get('/api/engagement/comments/pending/list', headers=auth_headers(reporter)).get_json()
        assert pending['pagination']['total'] == 1
        assert pending['comments'][0]['article']['title'] == 'Local team wins the final'

    def test_reply_tree(self, client, make_user, auth_headers, make_article):
        article = make_article()
        headers = auth_headers(make_user())
        parent = client.post(f"/api/engagement/comments/{article.id}", json={'content': 'Top level'},
                             headers=headers).get_json()['comment']
        client.post(f"/api/engagement/comments/{article.id}", json={'content': 'Reply', 'parent': parent['id']},
                    headers=headers)
        comments = client.get(f"/api/engagement/comments/{article.id}").get_json()['comments']
        assert len(comments) == 1
        assert [r['content'] for r in comments[0]['replies']] == ['Reply']

    def test_edit_window(self, client, db, make_user, auth_headers, make_article):
        article = make_article()
        reader = make_user()
        headers = auth_headers(reader)
        comment_id = client.post(f"/api/engagement/comments/{article.id}", json={'content': 'First take'},
                                 headers=headers).get_json()['comment']['id']

        res = client.put(f"/api/engagement/comments/{comment_id}", json={'content': 'Second take'}, headers=headers)
        assert res.get_json()['comment']['is_edited'] is True

        db.query(Comment).filter(Comment.id == comment_id).update(
            {Comment.created_at: datetime.utcnow() - timedelta(minutes=11)}
        )
        db.commit()
        res = client.put(f"/api/engagement/comments/{comment_id}", json={'content': 'Third take'}, headers=headers)
        assert res.status_code == 400

    def test_user_cannot_delete_others_comment(self, client, make_user, auth_headers, make_article):
        article = make_article()
        comment_id = client.post(f"/api/engagement/comments/{article.id}", json={'content': 'Mine'},
                                 headers=auth_headers(make_user())).get_json()['comment']['id']
        res = client.delete(f"/api/engagement/comments/{comment_id}", headers=auth_headers(make_user()))
        assert res.status_code == 404


class TestLanguageApi:
    def test_public_list(self, client):
        languages = client.get('/api/languages').get_json()['languages']
        assert [lang['code'] for lang in languages] == ['en']

    def test_create_and_duplicate(self, client, admin, auth_headers):
        body = {'code': 'TE', 'name': 'Telugu', 'native_name': 'తెలుగు'}
        res = client.post('/api/languages', json=body, headers=auth_headers(admin))
        assert res.status_code == 201
        assert res.get_json()['language']['code'] == 'te'
        assert [lang['code'] for lang in client.get('/api/languages').get_json()['languages']] == ['en', 'te']

        res = client.post('/api/languages', json=body, headers=auth_headers(admin))
        assert res.status_code == 400
        assert res.get_json()['error'] == 'Language code already exists'

    def test_set_default(self, client, db, admin, auth_headers):
        telugu = Language(code='te', name='Telugu', native_name='తెలుగు', order=2)
        db.add(telugu)
        db.commit()
        res = client.put(f"/api/languages/{telugu.id}/default", headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.get_json()['message'] == 'Telugu is now the default language'
        assert client.get('/api/languages/default').get_json()['language']['code'] == 'te'

    def test_inactive_cannot_be_default(self, client, db, admin, auth_headers):
        hindi = Language(code='hi', name='Hindi', native_name='हिन्दी', is_active=False)
        db.add(hindi)
        db.commit()
        res = client.put(f"/api/languages/{hindi.id}/default", headers=auth_headers(admin))
        assert res.status_code == 400

    def test_default_cannot_be_deleted(self, client, db, admin, auth_headers):
        english = db.query(Language).filter(Language.code == 'en').one()
        res = client.delete(f"/api/languages/{english.id}", headers=auth_headers(admin))
        assert res.status_code == 400


class TestUploadApi:
    def test_sas_token(self, client, reporter, auth_headers, fake_storage):
        res = client.post('/api/upload/sas-token', json={'file_name': 'photo.jpg', 'content_type': 'image/jpeg'},
                          headers=auth_headers(reporter))
        assert res.status_code == 200
        assert res.get_json()['blob_name'].startswith('images/')

    def test_invalid_type(self, client, reporter, auth_headers, fake_storage):
        res = client.post('/api/upload/sas-token', json={'file_name': 'x.exe', 'content_type': 'application/x-msdownload'},
                          headers=auth_headers(reporter))
        assert res.status_code == 400
        assert 'allowed_types' in res.get_json()

    def test_batch_limit(self, client, reporter, auth_headers, fake_storage):
        files = [{'file_name': f"p{i}.png", 'content_type': 'image/png'} for i in range(11)]
        res = client.post('/api/upload/sas-tokens', json={'files': files}, headers=auth_headers(reporter))
        assert res.status_code == 400
        assert res.get_json()['error'] == 'Maximum 10 files per batch'

    def test_batch(self, client, reporter, auth_headers, fake_storage):
        files = [{'file_name': 'a.png', 'content_type': 'image/png'}, {'file_name': 'b.mp4', 'content_type': 'video/mp4'}]
        uploads = client.post('/api/upload/sas-tokens', json={'files': files},
                              headers=auth_headers(reporter)).get_json()['uploads']
        assert [u['original_file_name'] for u in uploads] == ['a.png', 'b.mp4']
        assert uploads[1]['blob_name'].startswith('videos/')

    def test_users_cannot_upload(self, client, make_user, auth_headers, fake_storage):
        res = client.post('/api/upload/sas-token', json={'file_name': 'photo.jpg', 'content_type': 'image/jpeg'},
                          headers=auth_headers(make_user()))
        assert res.status_code == 403

    def test_delete(self, client, reporter, auth_headers, fake_storage):
        fake_storage.blobs['images/a.png'] = b'png'
        headers = auth_headers(reporter)
        assert client.delete('/api/upload/images/a.png', headers=headers).status_code == 200
        assert client.delete('/api/upload/images/a.png', headers=headers).status_code == 404

    def test_confirm(self, client, reporter, auth_headers, fake_storage):
        body = client.post('/api/upload/confirm', json={'blob_name': 'videos/clip.mp4'},
                           headers=auth_headers(reporter)).get_json()
        assert body['type'] == 'video'
        assert body['url'].endswith('/videos/clip.mp4')

    def test_proxied_file_upload(self, client, reporter, auth_headers, fake_storage):
        res = client.post('/api/upload/file', data={'file': (io.BytesIO(b'\x89PNG data'), 'shot.png', 'image/png')},
                          content_type='multipart/form-data', headers=auth_headers(reporter))
        assert res.status_code == 201
        body = res.get_json()
        assert body['blob_name'].startswith('images/') and body['blob_name'].endswith('.png')
        assert body['url'] == fake_storage.blob_url(body['blob_name'])
        assert fake_storage.blobs[body['blob_name']] == b'\x89PNG data'

    def test_proxied_upload_rejects_type(self, client, reporter, auth_headers, fake_storage):
        res = client.post('/api/upload/file', data={'file': (io.BytesIO(b'MZ'), 'tool.exe', 'application/x-msdownload')},
                          content_type='multipart/form-data', headers=auth_headers(reporter))
        assert res.status_code == 400
        assert fake_storage.blobs == {}

    def test_proxied_upload_requires_file(self, client, reporter, auth_headers, fake_storage):
        res = client.post('/api/upload/file', data={}, content_type='multipart/form-data',
                          headers=auth_headers(reporter))
        assert res.status_code == 400
        assert res.get_json()['error'] == 'No file provided'

    def test_unconfigured_storage(self, client, reporter, auth_headers):
        storage.set_storage(storage.BlobStorage(connection_string='', public_url='https://cdn.example.com'))
        try:
            res = client.post('/api/upload/sas-token', json={'file_name': 'photo.jpg', 'content_type': 'image/jpeg'},
                              headers=auth_headers(reporter))
        finally:
            storage.set_storage(None)
        assert res.status_code == 503
        assert res.get_json()['error'] == 'Blob storage is not configured'


class TestTranslateApi:
    def test_translate_fields(self, client, db, make_user, auth_headers, monkeypatch):
        db.add(Language(code='te', name='Telugu', native_name='తెలుగు', order=2))
        db.commit()
        calls = {}

        def fake_translate_fields(fields, codes, default_code):
            calls['codes'] = codes
            return {'title': {'en': fields['title']['en'], 'te': 'శీర్షిక'}}

        monkeypatch.setattr(translate_routes, 'translate_fields', fake_translate_fields)
        res = client.post('/api/translate', json={'title': {'en': 'Headline'}}, headers=auth_headers(make_user()))
        assert res.status_code == 200
        assert res.get_json()['title']['te'] == 'శీర్షిక'
        assert calls['codes'] == ['en', 'te']

    def test_translate_requires_text(self, client, make_user, auth_headers):
        res = client.post('/api/translate', json={'title': {'en': '  '}}, headers=auth_headers(make_user()))
        assert res.status_code == 400

    def test_translate_text(self, client, make_user, auth_headers, monkeypatch):
        monkeypatch.setattr(translate_routes, 'translate_text', lambda text, source, target: f"{target}:{text}")
        res = client.post('/api/translate/text', json={'text': 'Hello', 'source': 'en', 'targets': ['hi', 'te']},
                          headers=auth_headers(make_user()))
        assert res.get_json() == {'source': 'en', 'translations': {'en': 'Hello', 'hi': 'hi:Hello', 'te': 'te:Hello'}}

    def test_rate_limited(self, client, make_user, auth_headers, monkeypatch):
        def limited(text, source, target):
            raise TranslationError('Translation rate limit reached, please try again later', status=429)

        monkeypatch.setattr(translate_routes, 'translate_text', limited)
        res = client.post('/api/translate/text', json={'text': 'Hello', 'source': 'en', 'targets': ['hi']},
                          headers=auth_headers(make_user()))
        assert res.status_code == 429

    def test_tts(self, client, reporter, auth_headers, fake_storage, monkeypatch):
        monkeypatch.setattr(tts_service, 'synthesize_to_bytes', lambda text, voice: f"{voice}|{text}".encode())
        monkeypatch.setattr(config, 'TTS_VOICES', {'en': 'en-IN-NeerjaNeural', 'hi': 'hi-IN-SwaraNeural'})
        res = client.post('/api/translate/tts', json={'texts': {'en': 'Rain alert', 'fr': 'Alerte pluie'},
                                                      'name': 'Rain Alert'},
                          headers=auth_headers(reporter))
        assert res.status_code == 200
        audio = res.get_json()['audio']
        assert list(audio) == ['en']
        assert '/audio/rain-alert-en-' in audio['en']

    def test_tts_requires_text(self, client, reporter, auth_headers, fake_storage):
        res = client.post('/api/translate/tts', json={'texts': {'en': '   '}}, headers=auth_headers(reporter))
        assert res.status_code == 400

    def test_tts_failure(self, client, reporter, auth_headers, fake_storage, monkeypatch):
        def broken(text, voice):
            raise tts_service.TTSError('edge down')

        monkeypatch.setattr(tts_service, 'synthesize_to_bytes', broken)
        res = client.post('/api/translate/tts', json={'texts': {'en': 'Rain alert'}}, headers=auth_headers(reporter))
        assert res.status_code == 500
        assert res.get_json()['error'] == 'Audio generation failed'
        assert fake_storage.blobs == {}

    def test_tts_requires_reporter(self, client, make_user, auth_headers, fake_storage):
        res = client.post('/api/translate/tts', json={'texts': {'en': 'Rain alert'}},
                          headers=auth_headers(make_user()))
        assert res.status_code == 403


class TestScrapedArticleApi:
    @pytest.fixture(autouse=True)
    def fixed_language(self, monkeypatch):
        monkeypatch.setattr(scraped_article_routes, 'detect_language', lambda text: 'te')

    def test_create_public_and_duplicate(self, client):
        item = {'url': 'https://news.example.com/a/1', 'title': 'Headline', 'body': 'Body text'}
        res = client.post('/api/scraped-articles', json=item)
        assert res.status_code == 201
        created = res.get_json()['scraped_article']
        assert created['source'] == 'news.example.com'
        assert created['metadata']['language'] == 'te'

        res = client.post('/api/scraped-articles', json=item)
        assert res.status_code == 400
        assert res.get_json()['existing_id'] == created['id']

    def test_bulk(self, client, admin, auth_headers):
        client.post('/api/scraped-articles', json={'url': 'https://a.example.com/1', 'title': 'One'})
        items = [
            {'url': 'https://a.example.com/1', 'title': 'One again'},
            {'url': 'https://a.example.com/2', 'title': 'Two'},
            {'title': 'No url'},
        ]
        res = client.post('/api/scraped-articles/bulk', json=items, headers=auth_headers(admin))
        assert res.status_code == 201
        assert res.get_json()['summary'] == {'total': 3, 'created': 1, 'skipped': 1, 'errors': 1}

    def test_bulk_rejects_non_list(self, client, admin, auth_headers):
        res = client.post('/api/scraped-articles/bulk', json={'url': 'x'}, headers=auth_headers(admin))
        assert res.status_code == 400

    def test_status_and_stats(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        created = client.post('/api/scraped-articles', json={'url': 'https://b.example.com/1', 'title': 'One'})
        scraped_id = created.get_json()['scraped_article']['id']
        res = client.put(f"/api/scraped-articles/{scraped_id}/status",
                         json={'article_status': 'completed', 'article_id': '42'}, headers=headers)
        assert res.get_json()['article']['article_id'] == '42'

        stats = client.get('/api/scraped-articles/stats', headers=headers).get_json()
        assert stats['total'] == 1
        assert stats['by_status'] == {'completed': 1}
        assert stats['top_sources'] == [{'source': 'b.example.com', 'count': 1}]

    def test_list_filters(self, client):
        client.post('/api/scraped-articles', json={'url': 'https://c.example.com/1', 'title': 'Cricket final'})
        client.post('/api/scraped-articles', json={'url': 'https://d.example.com/1', 'title': 'Budget session'})
        body = client.get('/api/scraped-articles?source=c.example.com').get_json()
        assert [a['title'] for a in body['articles']] == ['Cricket final']
