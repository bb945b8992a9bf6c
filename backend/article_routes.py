"""Article endpoints: public feed, geo/trending queries and the authoring workflow"""
import logging
from datetime import datetime, timedelta

from flask import Blueprint, g, jsonify, request
from flask_login import current_user
from sqlalchemy import or_, update

import language_cache
import workflow
from auth_utils import admin_required, reporter_or_admin
from category_routes import subtree_ids
from localization import localize_article, request_language, wants_raw
from models import ARTICLE_STATUSES, Area, Article, Category, City, User, get_db
from schemas import ArticleCreate, ArticleUpdate, StatusUpdate, validate_body
from storage import StorageError
from tts_service import TTSError, synthesize_article_audio
from utils import (
    bounding_box, get_pagination, haversine_m, isoformat, pagination_meta, parse_bool, parse_float, parse_int,
)

logger = logging.getLogger(__name__)

articles_bp = Blueprint('articles', __name__, url_prefix='/api/articles')

RELATED_LIMIT = 5
RELATED_SCAN = 200


def _published(query):
    return query.filter(Article.status == 'published')


def _search_filter(db, term):
    """Match the text of each active language, never the JSON keys"""
    pattern = f"%{term}%"
    codes = language_cache.get_active_language_codes(db) or [language_cache.get_default_language_code(db)]
    return or_(*(
        column[code].as_string().ilike(pattern)
        for column in (Article.title, Article.summary, Article.content)
        for code in codes
    ))


def _localized(articles, db, extra=None):
    lang, default_lang = request_language(db)
    out = []
    for article in articles:
        data = article.to_dict()
        if extra:
            data.update(extra(article))
        out.append(localize_article(data, lang, default_lang))
    return out


def _bump_category_count(db, category_id, delta):
    db.execute(
        update(Category).where(Category.id == category_id)
        .values(article_count=Category.article_count + delta)
    )


def _can_manage(article):
    return current_user.role == 'admin' or article.author_id == current_user.id


def _resolve_location(db, changes, article):
    """Check city/area references. Returns an error message or None."""
    city_id = changes.get('city', article.city_id)
    area_id = changes.get('area', article.area_id)
    if city_id is not None and db.get(City, city_id) is None:
        return 'City not found'
    if area_id is not None:
        area = db.get(Area, area_id)
        if area is None:
            return 'Area not found'
        if city_id is None:
            changes['city'] = area.city_id
        elif area.city_id != city_id:
            return 'Area does not belong to the selected city'
    return None


def _apply(article, changes):
    simple = {
        'summary': 'summary', 'images': 'images', 'videos': 'videos', 'tags': 'tags',
        'featured_image': 'featured_image', 'audio': 'audio', 'city': 'city_id', 'area': 'area_id',
        'is_featured': 'is_featured', 'is_breaking': 'is_breaking', 'is_premium': 'is_premium',
        'seo': 'seo', 'title': 'title', 'content': 'content',
    }
    for key, attr in simple.items():
        if key in changes:
            value = changes[key]
            if key in ('title', 'summary', 'content', 'audio'):
                value = dict(value or {})
            elif key in ('images', 'videos', 'tags'):
                value = list(value or [])
            setattr(article, attr, value)
    if 'location' in changes:
        location = changes['location']
        if location:
            article.longitude, article.latitude = location['coordinates']
        else:
            article.longitude = article.latitude = None


# ==================== Public ====================

@articles_bp.route('', methods=['GET'])
@articles_bp.route('/', methods=['GET'])
def list_articles():
    page, limit = get_pagination(request.args)
    search = (request.args.get('search') or '').strip()

    db = get_db()
    try:
        query = _published(db.query(Article))

        category = request.args.get('category')
        if category:
            category_id = parse_int(category, None)
            if category_id is None:
                return jsonify({'error': 'Invalid category id'}), 400
            query = query.filter(Article.category_id.in_(subtree_ids(db, category_id)))
        city = parse_int(request.args.get('city'), None)
        if city is not None:
            query = query.filter(Article.city_id == city)
        area = parse_int(request.args.get('area'), None)
        if area is not None:
            query = query.filter(Article.area_id == area)
        if parse_bool(request.args.get('featured'), False):
            query = query.filter(Article.is_featured.is_(True))
        if parse_bool(request.args.get('breaking'), False):
            query = query.filter(Article.is_breaking.is_(True))
        if search:
            query = query.filter(_search_filter(db, search))

        total = query.count()
        articles = (
            query.order_by(Article.published_at.desc(), Article.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return jsonify({
            'articles': _localized(articles, db),
            'pagination': pagination_meta(page, limit, total),
        })
    finally:
        db.close()


@articles_bp.route('/nearby', methods=['GET'])
def nearby_articles():
    lng = parse_float(request.args.get('lng'))
    lat = parse_float(request.args.get('lat'))
    if lng is None or lat is None:
        return jsonify({'error': 'Longitude and latitude are required'}), 400
    distance = parse_int(request.args.get('distance'), 10000, minimum=1)
    limit = parse_int(request.args.get('limit'), 20, minimum=1, maximum=100)

    db = get_db()
    try:
        min_lng, min_lat, max_lng, max_lat = bounding_box(lng, lat, distance)
        candidates = _published(db.query(Article)).filter(
            Article.longitude.isnot(None),
            Article.latitude.between(min_lat, max_lat),
            Article.longitude.between(min_lng, max_lng),
        ).all()

        scored = []
        for article in candidates:
            meters = haversine_m(lng, lat, article.longitude, article.latitude)
            if meters <= distance:
                scored.append((meters, article))
        scored.sort(key=lambda pair: pair[0])
        scored = scored[:limit]

        distances = {a.id: round(m) for m, a in scored}
        articles = _localized([a for _, a in scored], db, extra=lambda a: {'distance': distances[a.id]})
        return jsonify({'articles': articles})
    finally:
        db.close()


@articles_bp.route('/trending', methods=['GET'])
def trending_articles():
    limit = parse_int(request.args.get('limit'), 10, minimum=1, maximum=50)
    since = datetime.utcnow() - timedelta(hours=24)

    db = get_db()
    try:
        articles = (
            _published(db.query(Article))
            .filter(Article.published_at >= since)
            .order_by(Article.views.desc(), Article.likes.desc(), Article.id.desc())
            .limit(limit)
            .all()
        )
        return jsonify({'articles': _localized(articles, db)})
    finally:
        db.close()


def _related(db, article):
    tags = set(article.tags or [])
    candidates = (
        _published(db.query(Article))
        .filter(Article.id != article.id)
        .order_by(Article.published_at.desc(), Article.id.desc())
        .limit(RELATED_SCAN)
        .all()
    )
    related = [
        c for c in candidates
        if c.category_id == article.category_id or tags.intersection(c.tags or [])
    ]
    return related[:RELATED_LIMIT]


@articles_bp.route('/slug/<slug>', methods=['GET'])
def get_article_by_slug(slug):
    db = get_db()
    try:
        article = _published(db.query(Article)).filter(Article.slug == slug).first()
        if not article:
            return jsonify({'error': 'Article not found'}), 404

        lang, default_lang = request_language(db)
        data = article.to_dict()
        if article.author is not None:
            data['author']['bio'] = article.author.bio
        data['breadcrumb'] = article.category.breadcrumb() if article.category is not None else []
        data['related'] = [
            {
                'id': r.id, 'title': dict(r.title or {}), 'slug': r.slug,
                'featured_image': r.featured_image, 'published_at': isoformat(r.published_at),
            }
            for r in _related(db, article)
        ]
        localized = localize_article(data, lang, default_lang)
        return jsonify({
            'article': localized,
            'breadcrumb': localized.pop('breadcrumb'),
            'related_articles': localized.pop('related'),
        })
    finally:
        db.close()


# ==================== Authoring ====================

@articles_bp.route('/<int:article_id>', methods=['GET'])
@reporter_or_admin
def get_article(article_id):
    db = get_db()
    try:
        article = db.get(Article, article_id)
        if not article:
            return jsonify({'error': 'Article not found'}), 404
        if not _can_manage(article):
            return jsonify({'error': 'Not authorized to view this article'}), 403
        return jsonify({'article': article.to_dict()})
    finally:
        db.close()


@articles_bp.route('', methods=['POST'])
@articles_bp.route('/', methods=['POST'])
@reporter_or_admin
@validate_body(ArticleCreate)
def create_article():
    changes = g.body.changes()
    db = get_db()
    try:
        category = db.get(Category, changes['category'])
        if not category:
            return jsonify({'error': 'Invalid category'}), 400

        article = Article(
            author_id=current_user.id,
            category_id=category.id,
            category_ancestors=category.ancestor_ids(),
            summary={},
            status=workflow.initial_status(current_user.role, changes.get('status')),
        )
        error = _resolve_location(db, changes, article)
        if error:
            return jsonify({'error': error}), 400
        _apply(article, changes)

        db.add(article)
        db.flush()
        _bump_category_count(db, category.id, 1)
        db.execute(
            update(User).where(User.id == current_user.id)
            .values(articles_count=User.articles_count + 1)
        )
        db.commit()
        db.refresh(article)
        logger.info(f"[ARTICLE] created {article.id} ({article.slug}) by {current_user.id} as {article.status}")
        return jsonify({'message': 'Article created', 'article': article.to_dict()}), 201
    finally:
        db.close()


@articles_bp.route('/<int:article_id>', methods=['PUT'])
@reporter_or_admin
@validate_body(ArticleUpdate)
def update_article(article_id):
    changes = g.body.changes()
    db = get_db()
    try:
        article = db.get(Article, article_id)
        if not article:
            return jsonify({'error': 'Article not found'}), 404
        if not _can_manage(article):
            return jsonify({'error': 'Not authorized to update this article'}), 403

        status = changes.get('status')
        if status and status != article.status and not workflow.can_transition(current_user.role, article.status, status):
            return jsonify({'error': f"Not authorized to set status '{status}'"}), 403
        if status and status == article.status and current_user.role != 'admin' and status not in workflow.REPORTER_STATUSES:
            return jsonify({'error': f"Not authorized to set status '{status}'"}), 403

        if changes.get('category') and changes['category'] != article.category_id:
            category = db.get(Category, changes['category'])
            if not category:
                return jsonify({'error': 'Invalid category'}), 400
            _bump_category_count(db, article.category_id, -1)
            _bump_category_count(db, category.id, 1)
            article.category_id = category.id
            article.category_ancestors = category.ancestor_ids()

        error = _resolve_location(db, changes, article)
        if error:
            return jsonify({'error': error}), 400
        _apply(article, changes)
        if status:
            article.status = status

        db.commit()
        db.refresh(article)
        return jsonify({'message': 'Article updated', 'article': article.to_dict()})
    finally:
        db.close()


@articles_bp.route('/<int:article_id>/submit', methods=['POST'])
@reporter_or_admin
def submit_article(article_id):
    db = get_db()
    try:
        article = db.get(Article, article_id)
        if not article:
            return jsonify({'error': 'Article not found'}), 404
        if not _can_manage(article):
            return jsonify({'error': 'Not authorized to submit this article'}), 403
        if not workflow.can_submit(article.status):
            return jsonify({'error': f"Cannot submit an article that is {article.status}"}), 400

        article.status = 'pending'
        db.commit()
        db.refresh(article)
        return jsonify({'message': 'Article submitted for review', 'article': article.to_dict()})
    finally:
        db.close()


@articles_bp.route('/<int:article_id>/status', methods=['PUT'])
@admin_required
@validate_body(StatusUpdate)
def update_article_status(article_id):
    status = g.body.status
    if status not in ARTICLE_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400

    db = get_db()
    try:
        article = db.get(Article, article_id)
        if not article:
            return jsonify({'error': 'Article not found'}), 404
        article.status = status
        db.commit()
        db.refresh(article)
        logger.info(f"[ARTICLE] {article.id} -> {status} (by {current_user.id})")
        return jsonify({'message': f"Article {status}", 'article': article.to_dict()})
    finally:
        db.close()


@articles_bp.route('/<int:article_id>', methods=['DELETE'])
@admin_required
def archive_article(article_id):
    db = get_db()
    try:
        article = db.get(Article, article_id)
        if not article:
            return jsonify({'error': 'Article not found'}), 404
        article.status = 'archived'
        db.commit()
        return jsonify({'message': 'Article archived'})
    finally:
        db.close()


@articles_bp.route('/manage/list', methods=['GET'])
@reporter_or_admin
def manage_articles():
    page, limit = get_pagination(request.args)
    status = request.args.get('status')
    category = parse_int(request.args.get('category'), None)

    db = get_db()
    try:
        query = db.query(Article)
        if current_user.role == 'reporter':
            query = query.filter(Article.author_id == current_user.id)
        if status:
            query = query.filter(Article.status == status)
        if category is not None:
            query = query.filter(Article.category_id == category)

        total = query.count()
        articles = (
            query.order_by(Article.created_at.desc(), Article.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        if wants_raw():
            payload = [a.to_dict() for a in articles]
        else:
            payload = _localized(articles, db)
        return jsonify({'articles': payload, 'pagination': pagination_meta(page, limit, total)})
    finally:
        db.close()


@articles_bp.route('/<int:article_id>/audio', methods=['POST'])
@reporter_or_admin
def generate_article_audio(article_id):
    """Text-to-speech of the article content for every language that has text"""
    db = get_db()
    try:
        article = db.get(Article, article_id)
        if not article:
            return jsonify({'error': 'Article not found'}), 404
        if not _can_manage(article):
            return jsonify({'error': 'Not authorized to update this article'}), 403

        texts = {}
        for lang, body in (article.content or {}).items():
            title = (article.title or {}).get(lang) or ''
            if body and body.strip():
                texts[lang] = f"{title}. {body}" if title else body
        if not texts:
            return jsonify({'error': 'Article has no content to read'}), 400

        try:
            urls = synthesize_article_audio(texts, basename=article.slug)
        except StorageError as e:
            return jsonify({'error': str(e)}), e.status
        except TTSError as e:
            logger.error(f"❌ TTS failed for article {article.id}: {e}")
            return jsonify({'error': 'Failed to generate audio'}), 500

        audio = dict(article.audio or {})
        audio.update(urls)
        article.audio = audio
        db.commit()
        return jsonify({'message': 'Audio generated', 'audio': audio})
    finally:
        db.close()
