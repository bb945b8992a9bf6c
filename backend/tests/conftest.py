"""
Shared fixtures: a fresh in-memory database per test, the Flask test client
and helpers to create users, categories, locations and articles.
"""
import os
import sys

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['JWT_SECRET'] = 'test-secret'

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

import api_cache
import language_cache
import storage
import translation_service
from auth_utils import create_access_token, hash_password
from models import Area, Article, Base, Category, City, Language, User, engine, get_db


@pytest.fixture(scope="function")
def db():
    """Fresh schema with English as the default language"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    language_cache.clear()
    api_cache.clear_cache()
    translation_service.clear_all_caches()

    session = get_db()
    session.add(Language(code='en', name='English', native_name='English', is_default=True, order=1))
    session.commit()
    yield session
    session.close()


@pytest.fixture
def client(db):
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def make_user(db):
    counter = {'n': 0}

    def _make(role='user', email=None, password='secret123', is_active=True):
        counter['n'] += 1
        user = User(
            name=f"{role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@test.com",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {'Authorization': f"Bearer {create_access_token(user)}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user('admin')


@pytest.fixture
def reporter(make_user):
    return make_user('reporter')


@pytest.fixture
def category(db):
    cat = Category(name={'en': 'Sports', 'hi': 'खेल'}, description={})
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@pytest.fixture
def city(db):
    hyd = City(
        name={'en': 'Hyderabad', 'te': 'హైదరాబాద్'},
        state={'en': 'Telangana', 'te': 'తెలంగాణ'},
        center_lng=78.4867,
        center_lat=17.3850,
    )
    db.add(hyd)
    db.commit()
    db.refresh(hyd)
    return hyd


@pytest.fixture
def area(db, city):
    banjara = Area(
        name={'en': 'Banjara Hills'},
        city_id=city.id,
        center_lng=78.4445,
        center_lat=17.4156,
        pincode='500034',
        pincodes=['500034'],
        boundary={
            'type': 'Polygon',
            'coordinates': [[[78.43, 17.40], [78.46, 17.40], [78.46, 17.43], [78.43, 17.43], [78.43, 17.40]]],
        },
    )
    db.add(banjara)
    db.commit()
    db.refresh(banjara)
    return banjara


@pytest.fixture
def make_article(db, reporter, category):
    def _make(title='Local team wins the final', status='published', author=None, cat=None, **fields):
        titles = title if isinstance(title, dict) else {'en': title}
        title = titles.get('en', '')
        article = Article(
            title=titles,
            summary=fields.pop('summary', {'en': f"Summary of {title}"}),
            content=fields.pop('content', {'en': f"Full story about {title}."}),
            author_id=(author or reporter).id,
            category_id=(cat or category).id,
            category_ancestors=(cat or category).ancestor_ids(),
            status=status,
            **fields,
        )
        db.add(article)
        db.commit()
        db.refresh(article)
        return article
    return _make


class FakeStorage:
    def __init__(self):
        self.blobs = {}

    def blob_url(self, blob_name):
        return f"https://example.blob.core.windows.net/media/{blob_name}"

    def get_upload_url(self, file_name, content_type):
        blob_name = storage.make_blob_name(file_name, content_type)
        return {
            'upload_url': f"{self.blob_url(blob_name)}?sig=x",
            'blob_url': self.blob_url(blob_name),
            'blob_name': blob_name,
            'expires_in': 900,
        }

    def get_read_url(self, blob_name, minutes=60):
        return f"{self.blob_url(blob_name)}?sig=r"

    def upload_bytes(self, blob_name, data, content_type):
        self.blobs[blob_name] = data
        return self.blob_url(blob_name)

    def delete_blob(self, blob_name):
        return self.blobs.pop(blob_name, None) is not None


@pytest.fixture
def fake_storage():
    fake = FakeStorage()
    storage.set_storage(fake)
    yield fake
    storage.set_storage(None)

