"""User administration, profile and preference endpoints"""
import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_

import language_cache
from auth_utils import admin_required
from models import Area, Category, City, User, get_db
from schemas import AssignedCategoriesUpdate, PreferencesUpdate, ProfileUpdate, RoleUpdate, StatusToggle, validate_body
from utils import get_pagination, pagination_meta

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route('', methods=['GET'])
@users_bp.route('/', methods=['GET'])
@admin_required
def list_users():
    page, limit = get_pagination(request.args)
    role = request.args.get('role')
    search = (request.args.get('search') or '').strip()

    db = get_db()
    try:
        query = db.query(User)
        if role:
            query = query.filter(User.role == role)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

        total = query.count()
        users = (
            query.order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return jsonify({
            'users': [u.to_admin_dict() for u in users],
            'pagination': pagination_meta(page, limit, total),
        })
    finally:
        db.close()


@users_bp.route('/profile', methods=['PUT'])
@login_required
@validate_body(ProfileUpdate)
def update_profile():
    changes = g.body.changes()
    db = get_db()
    try:
        user = db.get(User, current_user.id)
        if changes.get('name'):
            user.name = changes['name']
        if 'avatar' in changes:
            user.avatar = changes['avatar'] or None
        if 'bio' in changes:
            user.bio = changes['bio'] or None
        db.commit()
        db.refresh(user)
        return jsonify({'user': user.to_public_dict()})
    finally:
        db.close()


@users_bp.route('/preferences', methods=['PUT'])
@login_required
@validate_body(PreferencesUpdate)
def update_preferences():
    changes = g.body.changes()
    db = get_db()
    try:
        if changes.get('language') and not language_cache.is_valid_language_code(db, changes['language']):
            return jsonify({'error': f"Language '{changes['language']}' is not available"}), 400
        if changes.get('city') is not None and db.get(City, changes['city']) is None:
            return jsonify({'error': 'City not found'}), 400
        if changes.get('area') is not None and db.get(Area, changes['area']) is None:
            return jsonify({'error': 'Area not found'}), 400

        user = db.get(User, current_user.id)
        if changes.get('language'):
            user.preferred_language = changes['language']
        if 'city' in changes:
            user.preferred_city_id = changes['city']
        if 'area' in changes:
            user.preferred_area_id = changes['area']
        if changes.get('categories') is not None:
            user.preferred_categories = list(changes['categories'])
        db.commit()
        db.refresh(user)
        return jsonify({'message': 'Preferences updated', 'preferences': user.preferences()})
    finally:
        db.close()


@users_bp.route('/<int:user_id>/role', methods=['PUT'])
@admin_required
@validate_body(RoleUpdate)
def update_role(user_id):
    if user_id == current_user.id:
        return jsonify({'error': 'Cannot change your own role'}), 400

    db = get_db()
    try:
        user = db.get(User, user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 404
        user.role = g.body.role
        db.commit()
        db.refresh(user)
        logger.info(f"[ADMIN] user {user.id} role -> {user.role} (by {current_user.id})")
        return jsonify({'message': f"User role updated to {user.role}", 'user': user.to_public_dict()})
    finally:
        db.close()


@users_bp.route('/<int:user_id>/status', methods=['PUT'])
@admin_required
@validate_body(StatusToggle)
def update_status(user_id):
    if user_id == current_user.id:
        return jsonify({'error': 'Cannot change your own status'}), 400

    db = get_db()
    try:
        user = db.get(User, user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 404
        user.is_active = g.body.is_active
        db.commit()
        db.refresh(user)
        return jsonify({
            'message': f"User {'activated' if user.is_active else 'deactivated'}",
            'user': user.to_admin_dict(),
        })
    finally:
        db.close()


def _reporter_dict(db, reporter):
    data = reporter.to_admin_dict()
    ids = list(reporter.assigned_categories or [])
    categories = db.query(Category).filter(Category.id.in_(ids)).all() if ids else []
    data['assigned_categories'] = [{'id': c.id, 'name': dict(c.name or {}), 'slug': c.slug} for c in categories]
    return data


@users_bp.route('/reporters', methods=['GET'])
@admin_required
def list_reporters():
    db = get_db()
    try:
        reporters = (
            db.query(User)
            .filter(User.role == 'reporter', User.is_active.is_(True))
            .order_by(User.name.asc())
            .all()
        )
        return jsonify({'reporters': [_reporter_dict(db, r) for r in reporters]})
    finally:
        db.close()


@users_bp.route('/reporters/<int:user_id>/categories', methods=['PUT'])
@admin_required
@validate_body(AssignedCategoriesUpdate)
def assign_categories(user_id):
    db = get_db()
    try:
        reporter = db.query(User).filter(User.id == user_id, User.role == 'reporter').first()
        if not reporter:
            return jsonify({'error': 'Reporter not found'}), 404
        ids = list(dict.fromkeys(g.body.categories))
        found = {c.id for c in db.query(Category.id).filter(Category.id.in_(ids)).all()} if ids else set()
        missing = [i for i in ids if i not in found]
        if missing:
            return jsonify({'error': f"Unknown categories: {missing}"}), 400
        reporter.assigned_categories = ids
        db.commit()
        db.refresh(reporter)
        return jsonify({'message': 'Categories assigned', 'reporter': _reporter_dict(db, reporter)})
    finally:
        db.close()
