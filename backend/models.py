"""Database models for Taaja News API"""
import json
import math
from datetime import datetime

from sqlalchemy import (
    create_engine, event, inspect, text, Column, Integer, String, Boolean, DateTime, Text,
    Float, JSON, ForeignKey, Index,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, relationship, Session
from sqlalchemy.pool import StaticPool
from flask_login import UserMixin

import config
from utils import slugify, timestamp_suffix, isoformat, geojson_point, hostname_from_url

Base = declarative_base()

ROLES = ('user', 'reporter', 'admin')
ARTICLE_STATUSES = ('draft', 'pending', 'published', 'archived')
COMMENT_STATUSES = ('pending', 'approved', 'flagged', 'deleted')
ENGAGEMENT_TYPES = ('view', 'like', 'dislike', 'share', 'bookmark')
SCRAPED_ARTICLE_STATUSES = ('draft', 'processing', 'processed', 'completed')


class ValidationError(Exception):
    """Raised from the flush hooks when a document breaks a model rule."""

    def __init__(self, details):
        if isinstance(details, str):
            details = [details]
        self.details = list(details)
        super().__init__('; '.join(self.details))


def has_text(value):
    return isinstance(value, str) and value.strip() != ''


class User(UserMixin, Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default='user')  # user, reporter, admin
    avatar = Column(String(1000), nullable=True)
    is_active = Column(Boolean, default=True)

    # Preferences
    preferred_language = Column(String(10), default='en')
    preferred_city_id = Column(Integer, ForeignKey('cities.id'), nullable=True)
    preferred_area_id = Column(Integer, ForeignKey('areas.id'), nullable=True)
    preferred_categories = Column(JSON, default=list)

    # Reporter fields (same table, no subtype)
    bio = Column(String(500), nullable=True)
    assigned_categories = Column(JSON, default=list)
    articles_count = Column(Integer, default=0, nullable=False)

    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_users_role_active', 'role', 'is_active'),
    )

    def preferences(self):
        return {
            'language': self.preferred_language,
            'city': self.preferred_city_id,
            'area': self.preferred_area_id,
            'categories': list(self.preferred_categories or []),
        }

    def to_public_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'avatar': self.avatar,
            'preferences': self.preferences(),
            'created_at': isoformat(self.created_at),
        }

    def to_admin_dict(self):
        data = self.to_public_dict()
        data.update({
            'is_active': self.is_active,
            'bio': self.bio,
            'assigned_categories': list(self.assigned_categories or []),
            'articles_count': self.articles_count,
            'last_login': isoformat(self.last_login),
        })
        return data

    def author_summary(self):
        return {'id': self.id, 'name': self.name, 'avatar': self.avatar}


class Language(Base):
    __tablename__ = 'languages'

    id = Column(Integer, primary_key=True)
    code = Column(String(10), unique=True, nullable=False)
    name = Column(String(50), nullable=False)
    native_name = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True)
    is_default = Column(Boolean, default=False)
    is_rtl = Column(Boolean, default=False)
    order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_languages_active_order', 'is_active', 'order'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'native_name': self.native_name,
            'is_active': bool(self.is_active),
            'is_default': bool(self.is_default),
            'is_rtl': bool(self.is_rtl),
            'order': self.order or 0,
        }


class Category(Base):
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True)
    name = Column(JSON, nullable=False, default=dict)
    slug = Column(String(200), unique=True, nullable=True)
    description = Column(JSON, default=dict)
    parent_id = Column(Integer, ForeignKey('categories.id'), nullable=True, index=True)
    # Denormalized parent chain: [{id, name, slug}, ...] root first
    ancestors = Column(JSON, default=list)
    level = Column(Integer, default=0)
    icon = Column(String(100), nullable=True)
    color = Column(String(20), default='#1976d2')
    image = Column(String(1000), nullable=True)
    order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    is_featured = Column(Boolean, default=False)
    article_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_categories_active_order', 'is_active', 'order'),
    )

    def breadcrumb_entry(self):
        return {'id': self.id, 'name': dict(self.name or {}), 'slug': self.slug}

    def breadcrumb(self):
        return list(self.ancestors or []) + [self.breadcrumb_entry()]

    def ancestor_ids(self):
        return [a['id'] for a in (self.ancestors or [])]

    def to_dict(self):
        return {
            'id': self.id,
            'name': dict(self.name or {}),
            'slug': self.slug,
            'description': dict(self.description or {}),
            'parent': self.parent_id,
            'ancestors': list(self.ancestors or []),
            'level': self.level or 0,
            'icon': self.icon,
            'color': self.color,
            'image': self.image,
            'order': self.order or 0,
            'is_active': bool(self.is_active),
            'is_featured': bool(self.is_featured),
            'article_count': self.article_count or 0,
            'created_at': isoformat(self.created_at),
        }


class City(Base):
    __tablename__ = 'cities'

    id = Column(Integer, primary_key=True)
    name = Column(JSON, nullable=False, default=dict)
    slug = Column(String(200), unique=True, nullable=True)
    state = Column(JSON, nullable=False, default=dict)
    country = Column(String(100), default='India')
    # GeoJSON Point or Polygon
    location = Column(JSON, nullable=True)
    center_lng = Column(Float, nullable=False)
    center_lat = Column(Float, nullable=False)
    timezone = Column(String(64), default='Asia/Kolkata')
    population = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True)
    is_featured = Column(Boolean, default=False)
    order = Column(Integer, default=0)
    image = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    areas = relationship('Area', back_populates='city', lazy='select')

    __table_args__ = (
        Index('ix_cities_center', 'center_lat', 'center_lng'),
    )

    def summary(self):
        return {'id': self.id, 'name': dict(self.name or {}), 'slug': self.slug, 'state': dict(self.state or {})}

    def to_dict(self):
        return {
            'id': self.id,
            'name': dict(self.name or {}),
            'slug': self.slug,
            'state': dict(self.state or {}),
            'country': self.country,
            'location': self.location or geojson_point(self.center_lng, self.center_lat),
            'center': geojson_point(self.center_lng, self.center_lat),
            'timezone': self.timezone,
            'population': self.population,
            'is_active': bool(self.is_active),
            'is_featured': bool(self.is_featured),
            'order': self.order or 0,
            'image': self.image,
            'created_at': isoformat(self.created_at),
        }


class Area(Base):
    __tablename__ = 'areas'

    id = Column(Integer, primary_key=True)
    name = Column(JSON, nullable=False, default=dict)
    slug = Column(String(200), nullable=True)
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=False, index=True)
    # Optional GeoJSON Polygon
    boundary = Column(JSON, nullable=True)
    center_lng = Column(Float, nullable=False)
    center_lat = Column(Float, nullable=False)
    pincode = Column(String(10), nullable=True, index=True)
    pincodes = Column(JSON, default=list)
    is_active = Column(Boolean, default=True)
    order = Column(Integer, default=0)
    is_featured = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    city = relationship('City', back_populates='areas', lazy='select')

    __table_args__ = (
        Index('uq_areas_slug_city', 'slug', 'city_id', unique=True),
        Index('ix_areas_center', 'center_lat', 'center_lng'),
    )

    def summary(self):
        return {'id': self.id, 'name': dict(self.name or {}), 'slug': self.slug}

    def to_dict(self, include_city=True):
        data = {
            'id': self.id,
            'name': dict(self.name or {}),
            'slug': self.slug,
            'city': self.city_id,
            'boundary': self.boundary,
            'center': geojson_point(self.center_lng, self.center_lat),
            'pincode': self.pincode,
            'pincodes': list(self.pincodes or []),
            'is_active': bool(self.is_active),
            'order': self.order or 0,
            'is_featured': bool(self.is_featured),
            'created_at': isoformat(self.created_at),
        }
        if include_city and self.city is not None:
            data['city'] = self.city.summary()
        return data


class Article(Base):
    __tablename__ = 'articles'

    id = Column(Integer, primary_key=True)
    title = Column(JSON, nullable=False, default=dict)
    slug = Column(String(300), unique=True, nullable=True)
    summary = Column(JSON, nullable=False, default=dict)
    content = Column(JSON, nullable=False, default=dict)

    author_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey('categories.id'), nullable=False, index=True)
    # Ancestor category ids of category_id, for subtree queries
    category_ancestors = Column(JSON, default=list)

    featured_image = Column(JSON, nullable=True)  # {url, caption: {lang: text}, alt}
    images = Column(JSON, default=list)
    videos = Column(JSON, default=list)
    audio = Column(JSON, default=dict)  # {lang: url}

    longitude = Column(Float, nullable=True)
    latitude = Column(Float, nullable=True)
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=True, index=True)
    area_id = Column(Integer, ForeignKey('areas.id'), nullable=True, index=True)

    tags = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default='draft')
    published_at = Column(DateTime, nullable=True)

    # Engagement counters, only ever changed with UPDATE ... SET x = x + n
    views = Column(Integer, default=0, nullable=False)
    likes = Column(Integer, default=0, nullable=False)
    dislikes = Column(Integer, default=0, nullable=False)
    shares = Column(Integer, default=0, nullable=False)
    comments_count = Column(Integer, default=0, nullable=False)

    is_featured = Column(Boolean, default=False)
    is_breaking = Column(Boolean, default=False)
    is_premium = Column(Boolean, default=False)
    reading_time = Column(Integer, default=1)
    seo = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    author = relationship('User', lazy='select')
    category = relationship('Category', lazy='select')
    city = relationship('City', lazy='select')
    area = relationship('Area', lazy='select')

    __table_args__ = (
        Index('ix_articles_status_published', 'status', 'published_at'),
        Index('ix_articles_author_status', 'author_id', 'status'),
        Index('ix_articles_city_area_status', 'city_id', 'area_id', 'status'),
        Index('ix_articles_views', 'views'),
        Index('ix_articles_location', 'latitude', 'longitude'),
    )

    def engagement(self):
        return {
            'views': self.views or 0,
            'likes': self.likes or 0,
            'dislikes': self.dislikes or 0,
            'shares': self.shares or 0,
            'comments_count': self.comments_count or 0,
        }

    def to_dict(self, include_relations=True):
        data = {
            'id': self.id,
            'title': dict(self.title or {}),
            'slug': self.slug,
            'summary': dict(self.summary or {}),
            'content': dict(self.content or {}),
            'author': self.author_id,
            'category': self.category_id,
            'category_ancestors': list(self.category_ancestors or []),
            'featured_image': self.featured_image,
            'images': list(self.images or []),
            'videos': list(self.videos or []),
            'audio': dict(self.audio or {}),
            'location': geojson_point(self.longitude, self.latitude),
            'city': self.city_id,
            'area': self.area_id,
            'tags': list(self.tags or []),
            'status': self.status,
            'published_at': isoformat(self.published_at),
            'engagement': self.engagement(),
            'is_featured': bool(self.is_featured),
            'is_breaking': bool(self.is_breaking),
            'is_premium': bool(self.is_premium),
            'reading_time': self.reading_time or 1,
            'seo': self.seo,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if include_relations:
            if self.author is not None:
                data['author'] = self.author.author_summary()
            if self.category is not None:
                data['category'] = {
                    'id': self.category.id,
                    'name': dict(self.category.name or {}),
                    'slug': self.category.slug,
                    'color': self.category.color,
                }
            if self.city is not None:
                data['city'] = self.city.summary()
            if self.area is not None:
                data['area'] = self.area.summary()
        return data


class Engagement(Base):
    __tablename__ = 'engagements'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    article_id = Column(Integer, ForeignKey('articles.id'), nullable=False)
    type = Column(String(20), nullable=False)  # view, like, dislike, share, bookmark
    session_id = Column(String(128), nullable=True)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Views are time-windowed and may repeat, so they stay out of the unique indexes
    __table_args__ = (
        Index(
            'uq_engagement_user_article_type', 'user_id', 'article_id', 'type', unique=True,
            sqlite_where=text("user_id IS NOT NULL AND type != 'view'"),
            postgresql_where=text("user_id IS NOT NULL AND type != 'view'"),
        ),
        Index(
            'uq_engagement_session_article_type', 'session_id', 'article_id', 'type', unique=True,
            sqlite_where=text("user_id IS NULL AND session_id IS NOT NULL AND type != 'view'"),
            postgresql_where=text("user_id IS NULL AND session_id IS NOT NULL AND type != 'view'"),
        ),
        Index('ix_engagement_article_type_created', 'article_id', 'type', 'created_at'),
        Index('ix_engagement_user_type_created', 'user_id', 'type', 'created_at'),
    )


class Comment(Base):
    __tablename__ = 'comments'

    id = Column(Integer, primary_key=True)
    article_id = Column(Integer, ForeignKey('articles.id'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    content = Column(String(1000), nullable=False)
    parent_id = Column(Integer, ForeignKey('comments.id'), nullable=True, index=True)
    status = Column(String(20), nullable=False, default='approved')
    likes = Column(Integer, default=0, nullable=False)
    liked_by = Column(JSON, default=list)
    is_edited = Column(Boolean, default=False)
    edited_at = Column(DateTime, nullable=True)
    moderated_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    moderated_at = Column(DateTime, nullable=True)
    moderation_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship('User', foreign_keys=[user_id], lazy='select')
    article = relationship('Article', lazy='select')

    __table_args__ = (
        Index('ix_comments_article_status_created', 'article_id', 'status', 'created_at'),
        Index('ix_comments_status_created', 'status', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'article': self.article_id,
            'user': self.user.author_summary() if self.user is not None else self.user_id,
            'content': self.content,
            'parent': self.parent_id,
            'status': self.status,
            'likes': self.likes or 0,
            'liked_by': list(self.liked_by or []),
            'is_edited': bool(self.is_edited),
            'edited_at': isoformat(self.edited_at),
            'moderated_by': self.moderated_by,
            'moderated_at': isoformat(self.moderated_at),
            'moderation_reason': self.moderation_reason,
            'created_at': isoformat(self.created_at),
        }


class ScrapedArticle(Base):
    __tablename__ = 'scraped_articles'

    id = Column(Integer, primary_key=True)
    url = Column(String(1000), unique=True, nullable=False)
    title = Column(Text, nullable=False)
    published = Column(String(100), default='')
    body = Column(Text, default='')
    article_id = Column(String(50), nullable=True)
    article_status = Column(String(20), default='draft', index=True)  # draft, processing, processed, completed
    status = Column(String(20), default='active', index=True)  # active, inactive
    source = Column(String(255), default='', index=True)
    processing_error = Column(Text, nullable=True)
    meta = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'url': self.url,
            'title': self.title,
            'published': self.published or '',
            'body': self.body or '',
            'article_id': self.article_id,
            'article_status': self.article_status,
            'status': self.status,
            'source': self.source,
            'processing_error': self.processing_error,
            'metadata': dict(self.meta or {}),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }


# ==================== Save hooks ====================

MULTILINGUAL_REQUIRED = {
    Article: ('title', 'summary', 'content'),
    Category: ('name',),
    City: ('name', 'state'),
    Area: ('name',),
}


def _changed(obj, attr):
    state = inspect(obj)
    if state.pending or state.transient:
        return True
    return state.attrs[attr].history.has_changes()


def _validate_default_language(session, obj, default_code):
    errors = []
    for field in MULTILINGUAL_REQUIRED.get(type(obj), ()):
        if not _changed(obj, field):
            continue
        values = getattr(obj, field) or {}
        if not has_text(values.get(default_code)):
            errors.append(f"{field.capitalize()} in default language is required")
    return errors


def _slug_taken(session, Model, slug, obj, extra_filter=None):
    for pending in session.new:
        if pending is not obj and isinstance(pending, Model) and pending.slug == slug:
            if extra_filter is None or extra_filter(pending):
                return True
    query = session.query(Model.id).filter(Model.slug == slug)
    if obj.id is not None:
        query = query.filter(Model.id != obj.id)
    if Model is Area:
        query = query.filter(Area.city_id == obj.city_id)
    return query.first() is not None


def _article_hooks(session, obj, default_code):
    titles = obj.title or {}
    if inspect(obj).pending or (_changed(obj, 'title') and not obj.slug):
        english = titles.get('en')
        if has_text(english) and slugify(english, transliterate=False):
            slug = slugify(english, transliterate=False)
        else:
            fallback = titles.get(default_code) or next((v for v in titles.values() if has_text(v)), '')
            base = slugify(fallback)
            slug = f"{base}-{timestamp_suffix()}" if base else f"article-{timestamp_suffix()}"
        if _slug_taken(session, Article, slug, obj):
            slug = f"{slug}-{timestamp_suffix()}"
        obj.slug = slug

    if obj.status == 'published' and obj.published_at is None:
        obj.published_at = datetime.utcnow()

    if _changed(obj, 'content'):
        contents = obj.content or {}
        body = contents.get(default_code) or contents.get('en') or ''
        words = len(body.split())
        obj.reading_time = max(1, math.ceil(words / config.WORDS_PER_MINUTE))

    if obj.tags:
        obj.tags = [t.strip().lower() for t in obj.tags if has_text(t)]


def _category_hooks(session, obj, default_code):
    if _changed(obj, 'name'):
        names = obj.name or {}
        source = names.get('en') if has_text(names.get('en')) else names.get(default_code)
        slug = slugify(source)
        if slug:
            if _slug_taken(session, Category, slug, obj):
                slug = f"{slug}-{timestamp_suffix()}"
            obj.slug = slug

    if _changed(obj, 'parent_id'):
        parent = session.get(Category, obj.parent_id) if obj.parent_id else None
        if parent is not None:
            obj.ancestors = list(parent.ancestors or []) + [parent.breadcrumb_entry()]
            obj.level = (parent.level or 0) + 1
        else:
            obj.ancestors = []
            obj.level = 0


def _city_hooks(session, obj, default_code):
    if not _changed(obj, 'name'):
        return
    names = obj.name or {}
    states = obj.state or {}
    source = names.get('en') if has_text(names.get('en')) else names.get(default_code)
    slug = slugify(source)
    if not slug:
        return
    if _slug_taken(session, City, slug, obj):
        state_source = states.get('en') if has_text(states.get('en')) else states.get(default_code)
        state_slug = slugify(state_source)
        if state_slug:
            slug = f"{slug}-{state_slug}"
        if _slug_taken(session, City, slug, obj):
            slug = f"{slug}-{timestamp_suffix()}"
    obj.slug = slug


def _area_hooks(session, obj, default_code):
    if not _changed(obj, 'name'):
        return
    names = obj.name or {}
    source = names.get('en') if has_text(names.get('en')) else names.get(default_code)
    slug = slugify(source)
    if slug:
        if _slug_taken(session, Area, slug, obj, extra_filter=lambda other: other.city_id == obj.city_id):
            slug = f"{slug}-{timestamp_suffix()}"
        obj.slug = slug


def _language_hooks(session, obj):
    if obj.code:
        obj.code = obj.code.strip().lower()
    if obj.is_default and _changed(obj, 'is_default'):
        others = session.query(Language).filter(Language.is_default.is_(True)).all()
        others.extend(o for o in session.new if isinstance(o, Language) and o.is_default)
        for other in others:
            if other is not obj:
                other.is_default = False


HOOKS = {
    Article: _article_hooks,
    Category: _category_hooks,
    City: _city_hooks,
    Area: _area_hooks,
}


@event.listens_for(Session, 'before_flush')
def _before_flush(session, flush_context, instances):
    """Model rules that run whenever documents are saved (slugs, ancestors, invariants)."""
    import language_cache

    touched = [obj for obj in list(session.new) + list(session.dirty) if obj not in session.deleted]
    if not touched:
        return

    with session.no_autoflush:
        languages_changed = False
        for obj in touched:
            if isinstance(obj, Language):
                _language_hooks(session, obj)
                languages_changed = True
        if languages_changed or any(isinstance(o, Language) for o in session.deleted):
            language_cache.invalidate()

        content = [obj for obj in touched if type(obj) in HOOKS]
        if content:
            default_code = language_cache.get_default_language_code(session)
            errors = []
            for obj in content:
                errors.extend(_validate_default_language(session, obj, default_code))
            if errors:
                raise ValidationError(errors)
            for obj in content:
                HOOKS[type(obj)](session, obj, default_code)

        for obj in touched:
            if isinstance(obj, ScrapedArticle) and obj.url and not obj.source:
                obj.source = hostname_from_url(obj.url)
            elif isinstance(obj, User) and obj.email:
                obj.email = obj.email.strip().lower()


# Database setup
def _json_serializer(value):
    return json.dumps(value, ensure_ascii=False)


def _make_engine(url):
    kwargs = {'json_serializer': _json_serializer}
    if url.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if url in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool
    return create_engine(url, **kwargs)


DATABASE_URL = config.DATABASE_URL
engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Get database session - use as context manager or close manually"""
    return SessionLocal()
