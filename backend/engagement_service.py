"""
Engagement Service
View/like/dislike/share/bookmark tracking and threaded comments.

Article counters are only changed with single-statement SQL increments
(UPDATE articles SET views = views + 1) so concurrent requests never
lose updates.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError

import config
from models import Article, Comment, Engagement

logger = logging.getLogger(__name__)

COUNTER_FIELDS = {
    'view': 'views',
    'like': 'likes',
    'dislike': 'dislikes',
    'share': 'shares',
}


def adjust_counter(db, article_id, field, delta):
    """Atomically add `delta` to an article counter, never going below zero"""
    column = getattr(Article, field)
    if delta >= 0:
        value = column + delta
    else:
        value = case((column + delta < 0, 0), else_=column + delta)
    db.execute(update(Article).where(Article.id == article_id).values({field: value}))


def _actor_filter(query, user_id=None, session_id=None):
    if user_id is not None:
        return query.filter(Engagement.user_id == user_id)
    return query.filter(Engagement.user_id.is_(None), Engagement.session_id == session_id)


def find_engagement(db, article_id, type_, user_id=None, session_id=None):
    if user_id is None and not session_id:
        return None
    query = db.query(Engagement).filter(Engagement.article_id == article_id, Engagement.type == type_)
    return _actor_filter(query, user_id, session_id).first()


def track_view(db, article_id, user_id=None, session_id=None, ip=None, user_agent=None):
    """
    Record a view unless the same actor viewed within the dedup window.

    Actor precedence: user, then session, then IP. Anonymous requests with
    no identifier at all always count.

    Returns:
        bool: True if the view was counted
    """
    since = datetime.utcnow() - timedelta(hours=config.VIEW_DEDUP_WINDOW_HOURS)
    query = db.query(Engagement.id).filter(
        Engagement.article_id == article_id,
        Engagement.type == 'view',
        Engagement.created_at >= since,
    )
    if user_id is not None:
        query = query.filter(Engagement.user_id == user_id)
    elif session_id:
        query = query.filter(Engagement.user_id.is_(None), Engagement.session_id == session_id)
    elif ip:
        query = query.filter(Engagement.user_id.is_(None), Engagement.ip == ip)
    else:
        query = None

    if query is not None and query.first() is not None:
        return False

    db.add(Engagement(
        article_id=article_id,
        user_id=user_id,
        session_id=session_id,
        ip=ip,
        user_agent=(user_agent or '')[:500] or None,
        type='view',
    ))
    adjust_counter(db, article_id, 'views', 1)
    db.commit()
    return True


def toggle_reaction(db, article_id, type_, user_id=None, session_id=None, ip=None, user_agent=None):
    """
    Toggle a like or dislike. Adding one removes the opposite reaction.

    Returns:
        dict: {'active': bool, 'removed_opposite': bool}
    """
    opposite = 'dislike' if type_ == 'like' else 'like'
    counter = COUNTER_FIELDS[type_]

    existing = find_engagement(db, article_id, type_, user_id, session_id)
    if existing is not None:
        db.delete(existing)
        adjust_counter(db, article_id, counter, -1)
        db.commit()
        return {'active': False, 'removed_opposite': False}

    removed_opposite = False
    other = find_engagement(db, article_id, opposite, user_id, session_id)
    if other is not None:
        db.delete(other)
        adjust_counter(db, article_id, COUNTER_FIELDS[opposite], -1)
        db.commit()
        removed_opposite = True

    db.add(Engagement(
        article_id=article_id,
        user_id=user_id,
        session_id=session_id,
        ip=ip,
        user_agent=(user_agent or '')[:500] or None,
        type=type_,
    ))
    adjust_counter(db, article_id, counter, 1)
    db.commit()
    return {'active': True, 'removed_opposite': removed_opposite}


def record_share(db, article_id, user_id=None, session_id=None, ip=None, user_agent=None):
    """
    Returns:
        bool: False when this actor already shared the article
    """
    if find_engagement(db, article_id, 'share', user_id, session_id) is not None:
        return False
    db.add(Engagement(
        article_id=article_id,
        user_id=user_id,
        session_id=session_id,
        ip=ip,
        user_agent=(user_agent or '')[:500] or None,
        type='share',
    ))
    try:
        adjust_counter(db, article_id, 'shares', 1)
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def toggle_bookmark(db, article_id, user_id):
    existing = find_engagement(db, article_id, 'bookmark', user_id=user_id)
    if existing is not None:
        db.delete(existing)
        db.commit()
        return False
    db.add(Engagement(article_id=article_id, user_id=user_id, type='bookmark'))
    db.commit()
    return True


def get_user_status(db, article_id, user_id=None, session_id=None):
    """Which reactions the actor currently has on an article"""
    if user_id is None and not session_id:
        return {'liked': False, 'disliked': False, 'bookmarked': False, 'shared': False}
    query = db.query(Engagement.type).filter(Engagement.article_id == article_id)
    types = {row[0] for row in _actor_filter(query, user_id, session_id).all()}
    return {
        'liked': 'like' in types,
        'disliked': 'dislike' in types,
        'bookmarked': 'bookmark' in types,
        'shared': 'share' in types,
    }


# ==================== Comments ====================

def add_comment(db, article_id, user_id, content, parent_id=None, status='approved'):
    comment = Comment(
        article_id=article_id,
        user_id=user_id,
        content=content,
        parent_id=parent_id,
        status=status,
    )
    db.add(comment)
    if status == 'approved':
        adjust_counter(db, article_id, 'comments_count', 1)
    db.commit()
    db.refresh(comment)
    return comment


def set_comment_status(db, comment, status, moderator_id=None, reason=None):
    """
    Change a comment's status, keeping the article's comments_count in step:
    only approved comments are counted.
    """
    previous = comment.status
    comment.status = status
    if moderator_id is not None:
        comment.moderated_by = moderator_id
        comment.moderated_at = datetime.utcnow()
        comment.moderation_reason = reason
    if previous != 'approved' and status == 'approved':
        adjust_counter(db, comment.article_id, 'comments_count', 1)
    elif previous == 'approved' and status != 'approved':
        adjust_counter(db, comment.article_id, 'comments_count', -1)
    db.commit()
    return comment


def soft_delete_comment(db, comment):
    comment.content = '[Deleted]'
    return set_comment_status(db, comment, 'deleted')


def toggle_comment_like(db, comment, user_id):
    """
    Returns:
        bool: True if the user now likes the comment
    """
    liked_by = list(comment.liked_by or [])
    if user_id in liked_by:
        liked_by.remove(user_id)
        liked = False
    else:
        liked_by.append(user_id)
        liked = True
    comment.liked_by = liked_by
    comment.likes = len(liked_by)
    db.commit()
    return liked


def can_edit_comment(comment, user_id, now=None):
    if comment.user_id != user_id or comment.status == 'deleted':
        return False
    now = now or datetime.utcnow()
    return now - comment.created_at <= timedelta(minutes=config.COMMENT_EDIT_WINDOW_MINUTES)


def build_comment_tree(comments):
    """
    Nest replies under their parents.

    Args:
        comments: Comment rows ordered oldest first

    Returns:
        list: Top-level comment dicts, each with a `replies` list
    """
    nodes = {}
    for comment in comments:
        node = comment.to_dict()
        node['replies'] = []
        nodes[comment.id] = node

    roots = []
    for comment in comments:
        node = nodes[comment.id]
        parent = nodes.get(comment.parent_id) if comment.parent_id else None
        if parent is not None:
            parent['replies'].append(node)
        else:
            roots.append(node)
    return roots
