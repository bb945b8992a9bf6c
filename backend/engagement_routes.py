"""Engagement endpoints: views, reactions, bookmarks and comments"""
import logging
from datetime import datetime

from flask import Blueprint, g, jsonify, request
from flask_login import current_user, login_required

import engagement_service
from api_cache import client_ip
from auth_utils import ROLE_USER, current_user_id, reporter_or_admin
from localization import localize, localize_article, request_language
from models import Article, Comment, Engagement, get_db
from schemas import CommentCreate, CommentModerate, CommentUpdate, validate_body
from utils import get_pagination, pagination_meta, parse_int

logger = logging.getLogger(__name__)

engagement_bp = Blueprint('engagement', __name__, url_prefix='/api/engagement')

MODERATION_STATUSES = ('approved', 'flagged', 'deleted')
VISIBLE_COMMENT_STATUSES = ('approved', 'pending')


def _session_id():
    body = request.get_json(silent=True) or {}
    value = body.get('session_id') or request.headers.get('X-Session-Id')
    return str(value)[:128] if value else None


def _article_exists(db, article_id):
    return db.query(Article.id).filter(Article.id == article_id).first() is not None


def _counts(db, article_id):
    article = db.get(Article, article_id)
    db.refresh(article)
    return article.engagement()


@engagement_bp.route('/view/<int:article_id>', methods=['POST'])
def record_view(article_id):
    db = get_db()
    try:
        if not _article_exists(db, article_id):
            return jsonify({'error': 'Article not found'}), 404
        recorded = engagement_service.track_view(
            db, article_id,
            user_id=current_user_id(),
            session_id=_session_id(),
            ip=client_ip(),
            user_agent=request.headers.get('User-Agent'),
        )
        return jsonify({'recorded': recorded, 'views': _counts(db, article_id)['views']})
    finally:
        db.close()


def _react(article_id, type_):
    db = get_db()
    try:
        if not _article_exists(db, article_id):
            return jsonify({'error': 'Article not found'}), 404
        result = engagement_service.toggle_reaction(
            db, article_id, type_,
            user_id=current_user.id,
            ip=client_ip(),
            user_agent=request.headers.get('User-Agent'),
        )
        counts = _counts(db, article_id)
        action = f"{type_}d" if result['active'] else f"un{type_}d"
        return jsonify({'action': action, 'likes': counts['likes'], 'dislikes': counts['dislikes']})
    finally:
        db.close()


@engagement_bp.route('/like/<int:article_id>', methods=['POST'])
@login_required
def like_article(article_id):
    return _react(article_id, 'like')


@engagement_bp.route('/dislike/<int:article_id>', methods=['POST'])
@login_required
def dislike_article(article_id):
    return _react(article_id, 'dislike')


@engagement_bp.route('/share/<int:article_id>', methods=['POST'])
@login_required
def share_article(article_id):
    db = get_db()
    try:
        if not _article_exists(db, article_id):
            return jsonify({'error': 'Article not found'}), 404
        recorded = engagement_service.record_share(
            db, article_id,
            user_id=current_user.id,
            ip=client_ip(),
            user_agent=request.headers.get('User-Agent'),
        )
        message = 'Share recorded' if recorded else 'Share already recorded'
        return jsonify({'message': message, 'shares': _counts(db, article_id)['shares']})
    finally:
        db.close()


@engagement_bp.route('/bookmark/<int:article_id>', methods=['POST'])
@login_required
def bookmark_article(article_id):
    db = get_db()
    try:
        if not _article_exists(db, article_id):
            return jsonify({'error': 'Article not found'}), 404
        added = engagement_service.toggle_bookmark(db, article_id, current_user.id)
        return jsonify({'action': 'bookmarked' if added else 'unbookmarked'})
    finally:
        db.close()


@engagement_bp.route('/bookmarks', methods=['GET'])
@login_required
def list_bookmarks():
    page, limit = get_pagination(request.args)
    db = get_db()
    try:
        query = db.query(Engagement).filter(Engagement.user_id == current_user.id, Engagement.type == 'bookmark')
        total = query.count()
        bookmarks = (
            query.order_by(Engagement.created_at.desc(), Engagement.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        ids = [b.article_id for b in bookmarks]
        articles = {
            a.id: a for a in
            db.query(Article).filter(Article.id.in_(ids), Article.status == 'published').all()
        } if ids else {}

        lang, default_lang = request_language(db)
        # Keep bookmark order (newest first)
        result = [
            localize_article(articles[i].to_dict(), lang, default_lang)
            for i in ids if i in articles
        ]
        return jsonify({'articles': result, 'pagination': pagination_meta(page, limit, total)})
    finally:
        db.close()


@engagement_bp.route('/status/<int:article_id>', methods=['GET'])
@login_required
def engagement_status(article_id):
    db = get_db()
    try:
        status = engagement_service.get_user_status(db, article_id, user_id=current_user.id)
        return jsonify({'status': status})
    finally:
        db.close()


# ==================== Comments ====================

@engagement_bp.route('/comments/<int:article_id>', methods=['GET'])
def list_comments(article_id):
    limit = parse_int(request.args.get('limit'), 50, minimum=1, maximum=200)
    db = get_db()
    try:
        comments = (
            db.query(Comment)
            .filter(Comment.article_id == article_id, Comment.status.in_(VISIBLE_COMMENT_STATUSES))
            .order_by(Comment.created_at.asc(), Comment.id.asc())
            .limit(limit)
            .all()
        )
        return jsonify({'comments': engagement_service.build_comment_tree(comments)})
    finally:
        db.close()


@engagement_bp.route('/comments/<int:article_id>', methods=['POST'])
@login_required
@validate_body(CommentCreate)
def create_comment(article_id):
    body = g.body
    db = get_db()
    try:
        if not _article_exists(db, article_id):
            return jsonify({'error': 'Article not found'}), 404
        if body.parent is not None:
            parent = db.get(Comment, body.parent)
            if parent is None or parent.article_id != article_id:
                return jsonify({'error': 'Invalid parent comment'}), 400

        comment = engagement_service.add_comment(
            db, article_id, current_user.id, body.content, parent_id=body.parent,
        )
        return jsonify({'message': 'Comment added', 'comment': comment.to_dict()}), 201
    finally:
        db.close()


@engagement_bp.route('/comments/<int:comment_id>', methods=['PUT'])
@login_required
@validate_body(CommentUpdate)
def update_comment(comment_id):
    db = get_db()
    try:
        comment = db.query(Comment).filter(Comment.id == comment_id, Comment.user_id == current_user.id).first()
        if not comment:
            return jsonify({'error': 'Comment not found'}), 404
        if not engagement_service.can_edit_comment(comment, current_user.id):
            return jsonify({'error': 'Cannot edit comment after 10 minutes'}), 400

        comment.content = g.body.content
        comment.is_edited = True
        comment.edited_at = datetime.utcnow()
        db.commit()
        db.refresh(comment)
        return jsonify({'message': 'Comment updated', 'comment': comment.to_dict()})
    finally:
        db.close()


@engagement_bp.route('/comments/<int:comment_id>', methods=['DELETE'])
@login_required
def delete_comment(comment_id):
    db = get_db()
    try:
        query = db.query(Comment).filter(Comment.id == comment_id)
        if current_user.role == ROLE_USER:
            query = query.filter(Comment.user_id == current_user.id)
        comment = query.first()
        if not comment:
            return jsonify({'error': 'Comment not found'}), 404
        engagement_service.soft_delete_comment(db, comment)
        return jsonify({'message': 'Comment deleted'})
    finally:
        db.close()


@engagement_bp.route('/comments/<int:comment_id>/like', methods=['POST'])
@login_required
def like_comment(comment_id):
    db = get_db()
    try:
        comment = db.get(Comment, comment_id)
        if not comment:
            return jsonify({'error': 'Comment not found'}), 404
        liked = engagement_service.toggle_comment_like(db, comment, current_user.id)
        return jsonify({'action': 'liked' if liked else 'unliked', 'likes': comment.likes})
    finally:
        db.close()


@engagement_bp.route('/comments/<int:comment_id>/moderate', methods=['PUT'])
@reporter_or_admin
@validate_body(CommentModerate)
def moderate_comment(comment_id):
    body = g.body
    if body.status not in MODERATION_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400

    db = get_db()
    try:
        comment = db.get(Comment, comment_id)
        if not comment:
            return jsonify({'error': 'Comment not found'}), 404
        engagement_service.set_comment_status(
            db, comment, body.status, moderator_id=current_user.id, reason=body.reason,
        )
        db.refresh(comment)
        logger.info(f"[MODERATION] comment {comment.id} -> {comment.status} (by {current_user.id})")
        return jsonify({'message': f"Comment {body.status}", 'comment': comment.to_dict()})
    finally:
        db.close()


@engagement_bp.route('/comments/pending/list', methods=['GET'])
@reporter_or_admin
def pending_comments():
    page, limit = get_pagination(request.args)
    db = get_db()
    try:
        query = db.query(Comment).filter(Comment.status == 'pending')
        total = query.count()
        comments = (
            query.order_by(Comment.created_at.desc(), Comment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        lang, default_lang = request_language(db)
        result = []
        for comment in comments:
            data = comment.to_dict()
            article = comment.article
            data['article'] = {
                'id': article.id,
                'title': localize(article.title, lang, default_lang),
                'slug': article.slug,
            } if article is not None else comment.article_id
            result.append(data)
        return jsonify({'comments': result, 'pagination': pagination_meta(page, limit, total)})
    finally:
        db.close()
