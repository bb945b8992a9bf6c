"""Language registry endpoints"""
import logging

from flask import Blueprint, g, jsonify

import language_cache
from auth_utils import admin_required
from models import Language, get_db
from schemas import LanguageCreate, LanguageReorder, LanguageUpdate, validate_body

logger = logging.getLogger(__name__)

languages_bp = Blueprint('languages', __name__, url_prefix='/api/languages')


def _reload(db):
    language_cache.invalidate()
    language_cache.refresh(db)


@languages_bp.route('', methods=['GET'])
@languages_bp.route('/', methods=['GET'])
def list_languages():
    db = get_db()
    try:
        return jsonify({'languages': language_cache.get_active_languages(db)})
    finally:
        db.close()


@languages_bp.route('/default', methods=['GET'])
def default_language():
    db = get_db()
    try:
        return jsonify({'language': language_cache.get_default_language(db)})
    finally:
        db.close()


@languages_bp.route('/all', methods=['GET'])
@admin_required
def all_languages():
    db = get_db()
    try:
        rows = db.query(Language).order_by(Language.order.asc(), Language.id.asc()).all()
        return jsonify({'languages': [row.to_dict() for row in rows]})
    finally:
        db.close()


@languages_bp.route('', methods=['POST'])
@languages_bp.route('/', methods=['POST'])
@admin_required
@validate_body(LanguageCreate)
def create_language():
    body = g.body
    db = get_db()
    try:
        if db.query(Language.id).filter(Language.code == body.code).first():
            return jsonify({'error': 'Language code already exists'}), 400
        language = Language(
            code=body.code,
            name=body.name,
            native_name=body.native_name,
            is_rtl=bool(body.is_rtl),
            order=body.order or 0,
            is_active=True,
            is_default=False,
        )
        db.add(language)
        db.commit()
        db.refresh(language)
        _reload(db)
        logger.info(f"🌐 Language added: {language.code}")
        return jsonify({'message': 'Language created successfully', 'language': language.to_dict()}), 201
    finally:
        db.close()


@languages_bp.route('/<int:language_id>', methods=['PUT'])
@admin_required
@validate_body(LanguageUpdate)
def update_language(language_id):
    changes = g.body.changes()
    db = get_db()
    try:
        language = db.get(Language, language_id)
        if not language:
            return jsonify({'error': 'Language not found'}), 404
        if language.is_default and changes.get('is_active') is False:
            return jsonify({
                'error': 'Cannot deactivate the default language. Set another language as default first.'
            }), 400

        for key in ('name', 'native_name', 'is_active', 'is_rtl', 'order'):
            if changes.get(key) is not None:
                setattr(language, key, changes[key])
        db.commit()
        db.refresh(language)
        _reload(db)
        return jsonify({'message': 'Language updated successfully', 'language': language.to_dict()})
    finally:
        db.close()


@languages_bp.route('/<int:language_id>/default', methods=['PUT'])
@admin_required
def set_default_language(language_id):
    db = get_db()
    try:
        language = db.get(Language, language_id)
        if not language:
            return jsonify({'error': 'Language not found'}), 404
        if not language.is_active:
            return jsonify({'error': 'Cannot set inactive language as default'}), 400

        # The flush hook clears is_default on every other row
        language.is_default = True
        db.commit()
        db.refresh(language)
        _reload(db)
        logger.info(f"🌐 Default language is now {language.code}")
        return jsonify({'message': f"{language.name} is now the default language", 'language': language.to_dict()})
    finally:
        db.close()


@languages_bp.route('/<int:language_id>', methods=['DELETE'])
@admin_required
def delete_language(language_id):
    db = get_db()
    try:
        language = db.get(Language, language_id)
        if not language:
            return jsonify({'error': 'Language not found'}), 404
        if language.is_default:
            return jsonify({
                'error': 'Cannot delete the default language. Set another language as default first.'
            }), 400
        language.is_active = False
        db.commit()
        db.refresh(language)
        _reload(db)
        return jsonify({'message': 'Language deactivated successfully', 'language': language.to_dict()})
    finally:
        db.close()


@languages_bp.route('/reorder/batch', methods=['PUT'])
@admin_required
@validate_body(LanguageReorder)
def reorder_languages():
    db = get_db()
    try:
        for item in g.body.languages:
            db.query(Language).filter(Language.id == item.id).update(
                {Language.order: item.order}, synchronize_session=False
            )
        db.commit()
        _reload(db)
        return jsonify({
            'message': 'Languages reordered successfully',
            'languages': language_cache.get_active_languages(db),
        })
    finally:
        db.close()
