"""Translation and text-to-speech endpoints"""
import logging

from flask import Blueprint, g, jsonify
from flask_login import login_required

import language_cache
from auth_utils import reporter_or_admin
from models import get_db, has_text
from schemas import TranslateRequest, TranslateTextRequest, TTSRequest, validate_body
from storage import StorageError
from translation_service import TRANSLATABLE_FIELDS, TranslationError, detect_language, translate_fields, translate_text
from tts_service import TTSError, synthesize_article_audio

logger = logging.getLogger(__name__)

translate_bp = Blueprint('translate', __name__, url_prefix='/api/translate')


def _active_codes():
    db = get_db()
    try:
        return language_cache.get_active_language_codes(db), language_cache.get_default_language_code(db)
    finally:
        db.close()


@translate_bp.route('', methods=['POST'])
@translate_bp.route('/', methods=['POST'])
@login_required
@validate_body(TranslateRequest)
def translate_article_fields():
    """Fill title/summary/content for every active language"""
    body = g.body.changes()
    fields = {name: body.get(name) or {} for name in TRANSLATABLE_FIELDS}
    if not any(fields.values()):
        return jsonify({'error': 'At least one field (title, summary, or content) is required'}), 400
    if not any(has_text(text) for values in fields.values() for text in values.values()):
        return jsonify({'error': 'Please provide content in at least one language to translate'}), 400

    codes, default_code = _active_codes()
    try:
        result = translate_fields(fields, codes, default_code)
    except TranslationError as e:
        return jsonify({'error': str(e)}), e.status
    return jsonify(result)


@translate_bp.route('/text', methods=['POST'])
@login_required
@validate_body(TranslateTextRequest)
def translate_single_text():
    body = g.body
    codes, default_code = _active_codes()
    source = body.source
    if not source:
        source = detect_language(body.text)
        if source == 'unknown':
            source = default_code
    targets = [code for code in (body.targets or codes) if code != source]

    translations = {source: body.text}
    try:
        for target in targets:
            translations[target] = translate_text(body.text, source, target)
    except TranslationError as e:
        return jsonify({'error': str(e)}), e.status
    return jsonify({'source': source, 'translations': translations})


@translate_bp.route('/tts', methods=['POST'])
@reporter_or_admin
@validate_body(TTSRequest)
def text_to_speech():
    body = g.body
    texts = {lang: text for lang, text in body.texts.items() if has_text(text)}
    if not texts:
        return jsonify({'error': 'Text is required in at least one language'}), 400
    try:
        audio = synthesize_article_audio(texts, basename=body.name)
    except StorageError as e:
        return jsonify({'error': str(e)}), e.status
    except TTSError as e:
        logger.error(f"❌ TTS failed: {e}")
        return jsonify({'error': 'Audio generation failed'}), 500
    return jsonify({'audio': audio})
