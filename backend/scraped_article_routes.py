"""Scraped article intake and admin management endpoints"""
import logging

from flask import Blueprint, g, jsonify, request
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, or_

from auth_utils import admin_required
from models import ScrapedArticle, get_db
from schemas import IdList, ScrapedArticleCreate, ScrapedArticleStatus, ScrapedArticleUpdate, validate_body
from translation_service import detect_language
from utils import get_pagination, pagination_meta

logger = logging.getLogger(__name__)

scraped_bp = Blueprint('scraped_articles', __name__, url_prefix='/api/scraped-articles')

TOP_SOURCES = 10


def _build(data):
    meta = dict(data.get('metadata') or {})
    if 'language' not in meta:
        language = detect_language(f"{data['title']} {data.get('body') or ''}")
        if language != 'unknown':
            meta['language'] = language
    return ScrapedArticle(
        url=data['url'],
        title=data['title'],
        published=data.get('published') or '',
        body=data.get('body') or '',
        article_id=data.get('article_id'),
        article_status=data.get('article_status') or 'draft',
        status=data.get('status') or 'active',
        source=data.get('source') or '',
        meta=meta,
    )


@scraped_bp.route('', methods=['POST'])
@scraped_bp.route('/', methods=['POST'])
@validate_body(ScrapedArticleCreate)
def create_scraped_article():
    data = g.body.changes()
    db = get_db()
    try:
        existing = db.query(ScrapedArticle.id).filter(ScrapedArticle.url == data['url']).first()
        if existing:
            return jsonify({'error': 'Article with this URL already exists', 'existing_id': existing.id}), 400
        article = _build(data)
        db.add(article)
        db.commit()
        db.refresh(article)
        logger.info(f"📰 Scraped article stored: {article.url} ({article.source})")
        return jsonify({'message': 'Scraped article created successfully', 'scraped_article': article.to_dict()}), 201
    finally:
        db.close()


@scraped_bp.route('/bulk', methods=['POST'])
@admin_required
def bulk_create():
    items = request.get_json(silent=True)
    if not isinstance(items, list) or not items:
        return jsonify({'error': 'Request body must be a non-empty array of articles'}), 400

    created, skipped, errors = [], [], []
    db = get_db()
    try:
        seen = set()
        for item in items:
            url = item.get('url') if isinstance(item, dict) else None
            try:
                data = ScrapedArticleCreate.model_validate(item).changes()
            except SchemaValidationError:
                errors.append({'url': url, 'error': 'URL and title are required'})
                continue

            existing = db.query(ScrapedArticle.id).filter(ScrapedArticle.url == data['url']).first()
            if existing or data['url'] in seen:
                skipped.append({
                    'url': data['url'],
                    'reason': 'Already exists',
                    'existing_id': existing.id if existing else None,
                })
                continue

            data['article_status'] = 'draft'
            data['status'] = 'active'
            article = _build(data)
            db.add(article)
            db.flush()
            seen.add(data['url'])
            created.append({'url': article.url, 'id': article.id})
        db.commit()
    finally:
        db.close()

    logger.info(f"📰 Bulk import: {len(created)} created, {len(skipped)} skipped, {len(errors)} errors")
    return jsonify({
        'message': 'Bulk import completed',
        'summary': {
            'total': len(items),
            'created': len(created),
            'skipped': len(skipped),
            'errors': len(errors),
        },
        'results': {'created': created, 'skipped': skipped, 'errors': errors},
    }), 201


@scraped_bp.route('', methods=['GET'])
@scraped_bp.route('/', methods=['GET'])
def list_scraped_articles():
    page, limit = get_pagination(request.args)
    db = get_db()
    try:
        query = db.query(ScrapedArticle)
        for param, column in (
            ('article_status', ScrapedArticle.article_status),
            ('status', ScrapedArticle.status),
            ('source', ScrapedArticle.source),
        ):
            value = request.args.get(param)
            if value:
                query = query.filter(column == value)
        search = (request.args.get('search') or '').strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(ScrapedArticle.title.ilike(pattern), ScrapedArticle.url.ilike(pattern)))

        total = query.count()
        articles = (
            query.order_by(ScrapedArticle.created_at.desc(), ScrapedArticle.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return jsonify({
            'articles': [a.to_dict() for a in articles],
            'pagination': pagination_meta(page, limit, total),
        })
    finally:
        db.close()


@scraped_bp.route('/stats', methods=['GET'])
@admin_required
def scraped_stats():
    db = get_db()
    try:
        total = db.query(func.count(ScrapedArticle.id)).scalar()
        by_status = dict(
            db.query(ScrapedArticle.article_status, func.count(ScrapedArticle.id))
            .group_by(ScrapedArticle.article_status)
            .all()
        )
        count = func.count(ScrapedArticle.id).label('count')
        top_sources = (
            db.query(ScrapedArticle.source, count)
            .group_by(ScrapedArticle.source)
            .order_by(count.desc())
            .limit(TOP_SOURCES)
            .all()
        )
        return jsonify({
            'total': total,
            'by_status': by_status,
            'top_sources': [{'source': source, 'count': n} for source, n in top_sources],
        })
    finally:
        db.close()


@scraped_bp.route('/<int:scraped_id>', methods=['GET'])
@admin_required
def get_scraped_article(scraped_id):
    db = get_db()
    try:
        article = db.get(ScrapedArticle, scraped_id)
        if not article:
            return jsonify({'error': 'Scraped article not found'}), 404
        return jsonify({'article': article.to_dict()})
    finally:
        db.close()


@scraped_bp.route('/<int:scraped_id>', methods=['PUT'])
@admin_required
@validate_body(ScrapedArticleUpdate)
def update_scraped_article(scraped_id):
    changes = g.body.changes()
    db = get_db()
    try:
        article = db.get(ScrapedArticle, scraped_id)
        if not article:
            return jsonify({'error': 'Scraped article not found'}), 404
        for key in ('url', 'title', 'published', 'body', 'article_id', 'article_status', 'status',
                    'source', 'processing_error'):
            if key in changes:
                setattr(article, key, changes[key])
        if 'metadata' in changes:
            article.meta = dict(changes['metadata'] or {})
        db.commit()
        db.refresh(article)
        return jsonify({'message': 'Scraped article updated successfully', 'article': article.to_dict()})
    finally:
        db.close()


@scraped_bp.route('/<int:scraped_id>/status', methods=['PUT'])
@admin_required
@validate_body(ScrapedArticleStatus)
def update_scraped_status(scraped_id):
    changes = g.body.changes()
    db = get_db()
    try:
        article = db.get(ScrapedArticle, scraped_id)
        if not article:
            return jsonify({'error': 'Scraped article not found'}), 404
        article.article_status = changes['article_status']
        if changes.get('article_id'):
            article.article_id = changes['article_id']
        if 'processing_error' in changes:
            article.processing_error = changes['processing_error']
        db.commit()
        db.refresh(article)
        return jsonify({'message': 'Status updated successfully', 'article': article.to_dict()})
    finally:
        db.close()


@scraped_bp.route('/<int:scraped_id>', methods=['DELETE'])
@admin_required
def delete_scraped_article(scraped_id):
    db = get_db()
    try:
        article = db.get(ScrapedArticle, scraped_id)
        if not article:
            return jsonify({'error': 'Scraped article not found'}), 404
        db.delete(article)
        db.commit()
        return jsonify({'message': 'Scraped article deleted successfully'})
    finally:
        db.close()


@scraped_bp.route('/bulk/delete', methods=['POST'])
@admin_required
@validate_body(IdList)
def bulk_delete():
    db = get_db()
    try:
        deleted = (
            db.query(ScrapedArticle)
            .filter(ScrapedArticle.id.in_(g.body.ids))
            .delete(synchronize_session=False)
        )
        db.commit()
        return jsonify({'message': 'Articles deleted successfully', 'deleted_count': deleted})
    finally:
        db.close()
