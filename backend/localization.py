"""
Localization helpers

Multilingual fields are stored as {language_code: text}. Responses are
flattened to a single language with a fallback chain:
requested language -> default language -> first non-blank value -> "".
"""
from flask import request

import language_cache
from models import has_text
from utils import parse_bool


def localize(field, lang, default_lang='en'):
    if not field:
        return ''
    if isinstance(field, str):
        return field
    value = field.get(lang)
    if has_text(value):
        return value
    value = field.get(default_lang)
    if has_text(value):
        return value
    return next((v for v in field.values() if has_text(v)), '')


def localize_breadcrumb(entries, lang, default_lang='en'):
    return [
        {'id': entry.get('id'), 'name': localize(entry.get('name'), lang, default_lang), 'slug': entry.get('slug')}
        for entry in entries or []
    ]


def localize_category(data, lang, default_lang='en'):
    """
    Flatten a Category.to_dict() payload.
    The raw maps are kept under `_multilingual` for edit forms.
    """
    out = dict(data)
    out['_multilingual'] = {
        'name': data.get('name') or {},
        'description': data.get('description') or {},
    }
    out['name'] = localize(data.get('name'), lang, default_lang)
    out['description'] = localize(data.get('description'), lang, default_lang)
    out['ancestors'] = localize_breadcrumb(data.get('ancestors'), lang, default_lang)
    if isinstance(out.get('children'), list):
        out['children'] = [localize_category(child, lang, default_lang) for child in out['children']]
    return out


def localize_city(data, lang, default_lang='en'):
    out = dict(data)
    out['_multilingual'] = {'name': data.get('name') or {}, 'state': data.get('state') or {}}
    out['name'] = localize(data.get('name'), lang, default_lang)
    out['state'] = localize(data.get('state'), lang, default_lang)
    if isinstance(out.get('areas'), list):
        out['areas'] = [localize_area(area, lang, default_lang) for area in out['areas']]
    return out


def localize_area(data, lang, default_lang='en'):
    out = dict(data)
    out['_multilingual'] = {'name': data.get('name') or {}}
    out['name'] = localize(data.get('name'), lang, default_lang)
    if isinstance(out.get('city'), dict):
        city = dict(out['city'])
        city['name'] = localize(city.get('name'), lang, default_lang)
        if 'state' in city:
            city['state'] = localize(city.get('state'), lang, default_lang)
        out['city'] = city
    return out


def _localize_ref(ref, lang, default_lang):
    if not isinstance(ref, dict):
        return ref
    ref = dict(ref)
    if 'name' in ref:
        ref['name'] = localize(ref['name'], lang, default_lang)
    if 'state' in ref:
        ref['state'] = localize(ref['state'], lang, default_lang)
    return ref


def localize_article(data, lang, default_lang='en'):
    out = dict(data)
    for field in ('title', 'summary', 'content'):
        out[field] = localize(data.get(field), lang, default_lang)
    out['audio_url'] = localize(data.get('audio'), lang, default_lang) or None
    image = data.get('featured_image')
    if isinstance(image, dict):
        image = dict(image)
        image['caption'] = localize(image.get('caption'), lang, default_lang)
        out['featured_image'] = image
    for ref in ('category', 'city', 'area'):
        out[ref] = _localize_ref(data.get(ref), lang, default_lang)
    if isinstance(out.get('breadcrumb'), list):
        out['breadcrumb'] = localize_breadcrumb(out['breadcrumb'], lang, default_lang)
    if isinstance(out.get('related'), list):
        out['related'] = [localize_article(item, lang, default_lang) for item in out['related']]
    out['lang'] = lang
    return out


def request_language(db):
    """
    Language for this response.

    Returns:
        tuple: (requested lang, default lang); requested falls back to the default
    """
    default_lang = language_cache.get_default_language_code(db)
    lang = (request.args.get('lang') or '').strip() or default_lang
    return lang, default_lang


def wants_raw():
    """raw=true returns the full multilingual maps (admin editors)"""
    return parse_bool(request.args.get('raw'), False)
