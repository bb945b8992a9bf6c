"""
Request body schemas (pydantic).

Unknown keys are ignored. A failed parse raises pydantic.ValidationError,
which the app turns into a 400 {'error': 'Validation Error', 'details': [...]}.
"""
import re
from functools import wraps
from typing import Any, Dict, List, Literal, Optional

from flask import g, request
from pydantic import BaseModel, ConfigDict, Field, field_validator

ARTICLE_STATUS = Literal['draft', 'pending', 'published', 'archived']
LANGUAGE_CODE_RE = re.compile(r'^[a-z]{2}(-[A-Z]{2})?$')
EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
COLOR_RE = re.compile(r'^#[0-9A-Fa-f]{6}$')

Multilingual = Dict[str, str]


def _check_lengths(values, field_name, minimum=0, maximum=None):
    for code, text in (values or {}).items():
        if not text:
            continue
        if len(text) < minimum:
            raise ValueError(f"{field_name} ({code}) must be at least {minimum} characters")
        if maximum and len(text) > maximum:
            raise ValueError(f"{field_name} ({code}) must be at most {maximum} characters")
    return values


def _check_email(value):
    value = value.strip().lower()
    if not EMAIL_RE.match(value):
        raise ValueError('email must be a valid email')
    return value


class Schema(BaseModel):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)

    def changes(self):
        """Fields the client actually sent"""
        return self.model_dump(exclude_unset=True)


# ==================== Auth & Users ====================

class RegisterRequest(Schema):
    name: str = Field(min_length=2, max_length=100)
    email: str
    password: str = Field(min_length=6, max_length=100)

    @field_validator('email')
    @classmethod
    def validate_email(cls, value):
        return _check_email(value)


class LoginRequest(Schema):
    email: str
    password: str = Field(min_length=1)

    @field_validator('email')
    @classmethod
    def validate_email(cls, value):
        return _check_email(value)


class ProfileUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    avatar: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)


class PreferencesUpdate(Schema):
    language: Optional[str] = Field(default=None, min_length=2, max_length=10)
    city: Optional[int] = None
    area: Optional[int] = None
    categories: Optional[List[int]] = None


class RoleUpdate(Schema):
    role: Literal['user', 'reporter', 'admin']


class StatusToggle(Schema):
    is_active: bool


class AssignedCategoriesUpdate(Schema):
    categories: List[int]


# ==================== Content ====================

class PointInput(Schema):
    type: Literal['Point'] = 'Point'
    coordinates: List[float] = Field(min_length=2, max_length=2)

    @field_validator('coordinates')
    @classmethod
    def validate_in_range(cls, value):
        lng, lat = value
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ValueError('coordinates must be [longitude, latitude] within range')
        return value


class PolygonInput(Schema):
    type: Literal['Polygon'] = 'Polygon'
    coordinates: List[List[List[float]]]


class ImageInput(Schema):
    url: str
    caption: Optional[Multilingual] = None
    alt: Optional[str] = None
    order: Optional[int] = None


class CategoryCreate(Schema):
    name: Multilingual
    description: Optional[Multilingual] = None
    parent: Optional[int] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    image: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None

    @field_validator('name')
    @classmethod
    def validate_name_lengths(cls, value):
        return _check_lengths(value, 'name', 2, 100)

    @field_validator('description')
    @classmethod
    def validate_description_lengths(cls, value):
        return _check_lengths(value, 'description', 0, 500)

    @field_validator('color')
    @classmethod
    def validate_color(cls, value):
        if value and not COLOR_RE.match(value):
            raise ValueError('color must be a hex color like #1976d2')
        return value or None


class CategoryUpdate(CategoryCreate):
    name: Optional[Multilingual] = None


class ReorderItem(Schema):
    id: int
    order: int = Field(ge=0)


class ReorderRequest(Schema):
    items: List[ReorderItem] = Field(min_length=1)


class ArticleCreate(Schema):
    title: Multilingual
    summary: Optional[Multilingual] = None
    content: Multilingual
    category: int
    featured_image: Optional[ImageInput] = None
    images: Optional[List[ImageInput]] = None
    videos: Optional[List[Dict[str, Any]]] = None
    location: Optional[PointInput] = None
    city: Optional[int] = None
    area: Optional[int] = None
    audio: Optional[Multilingual] = None
    tags: Optional[List[str]] = None
    status: Optional[ARTICLE_STATUS] = None
    is_featured: Optional[bool] = None
    is_breaking: Optional[bool] = None
    is_premium: Optional[bool] = None
    seo: Optional[Dict[str, Any]] = None

    @field_validator('title')
    @classmethod
    def validate_title_lengths(cls, value):
        return _check_lengths(value, 'title', 5, 200)

    @field_validator('summary')
    @classmethod
    def validate_summary_lengths(cls, value):
        return _check_lengths(value, 'summary', 0, 500)

    @field_validator('content')
    @classmethod
    def validate_content_lengths(cls, value):
        return _check_lengths(value, 'content', 0, 10000)

    @field_validator('tags')
    @classmethod
    def validate_tag_lengths(cls, value):
        if value and any(len(tag) > 50 for tag in value):
            raise ValueError('tags must be at most 50 characters')
        return value


class ArticleUpdate(ArticleCreate):
    title: Optional[Multilingual] = None
    content: Optional[Multilingual] = None
    category: Optional[int] = None


class StatusUpdate(Schema):
    status: str


class CommentCreate(Schema):
    content: str = Field(min_length=1, max_length=1000)
    parent: Optional[int] = None


class CommentUpdate(Schema):
    content: str = Field(min_length=1, max_length=1000)


class CommentModerate(Schema):
    status: str
    reason: Optional[str] = Field(default=None, max_length=500)


class CityCreate(Schema):
    name: Multilingual
    state: Multilingual
    center: PointInput
    location: Optional[Dict[str, Any]] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    population: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = None

    @field_validator('name', 'state')
    @classmethod
    def validate_lengths(cls, value, info):
        return _check_lengths(value, info.field_name, 2, 100)


class CityUpdate(CityCreate):
    name: Optional[Multilingual] = None
    state: Optional[Multilingual] = None
    center: Optional[PointInput] = None


class AreaCreate(Schema):
    name: Multilingual
    city: int
    center: PointInput
    boundary: Optional[PolygonInput] = None
    pincode: Optional[str] = Field(default=None, max_length=10)
    pincodes: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)

    @field_validator('name')
    @classmethod
    def validate_name_lengths(cls, value):
        return _check_lengths(value, 'name', 2, 100)


class AreaUpdate(AreaCreate):
    name: Optional[Multilingual] = None
    city: Optional[int] = None
    center: Optional[PointInput] = None


# ==================== Languages ====================

class LanguageCreate(Schema):
    code: str = Field(min_length=2, max_length=10)
    name: str = Field(min_length=2, max_length=50)
    native_name: str = Field(min_length=2, max_length=50)
    is_rtl: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)

    @field_validator('code')
    @classmethod
    def validate_code(cls, value):
        parts = value.split('-', 1)
        code = parts[0].lower() + ('-' + parts[1].upper() if len(parts) > 1 else '')
        if not LANGUAGE_CODE_RE.match(code):
            raise ValueError('code must look like "en" or "en-US"')
        return code


class LanguageUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    native_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    is_active: Optional[bool] = None
    is_rtl: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)


class LanguageReorder(Schema):
    languages: List[ReorderItem] = Field(min_length=1)


# ==================== Scraped articles ====================

class ScrapedArticleCreate(Schema):
    url: str = Field(min_length=1)
    title: str = Field(min_length=1)
    published: Optional[str] = ''
    body: Optional[str] = ''
    article_id: Optional[str] = None
    article_status: Optional[Literal['draft', 'processing', 'processed', 'completed']] = None
    status: Optional[Literal['active', 'inactive']] = None
    source: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class ScrapedArticleUpdate(ScrapedArticleCreate):
    url: Optional[str] = None
    title: Optional[str] = None
    processing_error: Optional[str] = None


class ScrapedArticleStatus(Schema):
    article_status: Literal['draft', 'processing', 'processed', 'completed']
    article_id: Optional[str] = None
    processing_error: Optional[str] = None


class IdList(Schema):
    ids: List[int] = Field(min_length=1)


# ==================== Uploads & translation ====================

class UploadRequest(Schema):
    file_name: str = Field(min_length=1)
    content_type: str


class BatchUploadRequest(Schema):
    files: List[UploadRequest] = Field(min_length=1)


class ReadUrlRequest(Schema):
    blob_name: str = Field(min_length=1)
    expiry_minutes: int = Field(default=60, ge=1, le=24 * 60)


class ConfirmUploadRequest(Schema):
    blob_name: str = Field(min_length=1)
    blob_url: Optional[str] = None


class TranslateRequest(Schema):
    title: Optional[Multilingual] = None
    summary: Optional[Multilingual] = None
    content: Optional[Multilingual] = None


class TranslateTextRequest(Schema):
    text: str = Field(min_length=1)
    source: Optional[str] = None
    targets: Optional[List[str]] = None


class TTSRequest(Schema):
    texts: Multilingual
    name: Optional[str] = None


def validate_body(schema_cls):
    """
    Parse the JSON body into `schema_cls` and store it on g.body.

    Usage:
        @bp.route('/', methods=['POST'])
        @validate_body(CategoryCreate)
        def create_category():
            data = g.body
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            g.body = schema_cls.model_validate(request.get_json(silent=True) or {})
            return fn(*args, **kwargs)
        return wrapper
    return decorator
