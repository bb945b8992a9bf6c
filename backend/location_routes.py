"""City and area endpoints, including nearby and containment lookups"""
import logging

from flask import Blueprint, g, jsonify, request

from api_cache import cached, invalidate_cache
from auth_utils import admin_required
from localization import localize, localize_area, localize_city, request_language, wants_raw
from models import Area, City, get_db
from schemas import AreaCreate, AreaUpdate, CityCreate, CityUpdate, validate_body
from utils import bounding_box, haversine_m, parse_bool, parse_float, parse_int, point_in_polygon

logger = logging.getLogger(__name__)

locations_bp = Blueprint('locations', __name__, url_prefix='/api/locations')

CACHE_PREFIX = 'locations'


def _matches(values, term):
    term = term.lower()
    return any(term in (v or '').lower() for v in (values or {}).values())


def _city_order(query):
    return query.order_by(City.is_featured.desc(), City.order.asc(), City.id.asc())


def _area_order(query):
    return query.order_by(Area.is_featured.desc(), Area.order.asc(), Area.id.asc())


def _nearby(db, Model, default_distance):
    """Rows of Model within `distance` meters of (lng, lat), nearest first"""
    lng = parse_float(request.args.get('lng'))
    lat = parse_float(request.args.get('lat'))
    if lng is None or lat is None:
        return None
    distance = parse_int(request.args.get('distance'), default_distance, minimum=1)
    limit = parse_int(request.args.get('limit'), 10, minimum=1, maximum=100)

    min_lng, min_lat, max_lng, max_lat = bounding_box(lng, lat, distance)
    candidates = db.query(Model).filter(
        Model.is_active.is_(True),
        Model.center_lat.between(min_lat, max_lat),
        Model.center_lng.between(min_lng, max_lng),
    ).all()

    scored = []
    for row in candidates:
        meters = haversine_m(lng, lat, row.center_lng, row.center_lat)
        if meters <= distance:
            scored.append((meters, row))
    scored.sort(key=lambda pair: pair[0])
    return scored[:limit]


# ==================== Cities ====================

@locations_bp.route('/cities', methods=['GET'])
def list_cities():
    state = (request.args.get('state') or '').strip()
    search = (request.args.get('search') or '').strip()

    db = get_db()
    try:
        query = db.query(City).filter(City.is_active.is_(True))
        if parse_bool(request.args.get('featured'), False):
            query = query.filter(City.is_featured.is_(True))
        cities = _city_order(query).all()

        # Matches any language value, so the filtering happens here instead of SQL
        if state:
            cities = [c for c in cities if _matches(c.state, state)]
        if search:
            cities = [c for c in cities if _matches(c.name, search)]

        data = [c.to_dict() for c in cities]
        if wants_raw():
            return jsonify({'cities': data})
        lang, default_lang = request_language(db)
        return jsonify({'cities': [localize_city(c, lang, default_lang) for c in data]})
    finally:
        db.close()


@locations_bp.route('/cities/nearby', methods=['GET'])
def nearby_cities():
    db = get_db()
    try:
        scored = _nearby(db, City, 100000)
        if scored is None:
            return jsonify({'error': 'Longitude and latitude are required'}), 400
        lang, default_lang = request_language(db)
        cities = []
        for meters, city in scored:
            data = city.to_dict()
            data['distance'] = round(meters)
            cities.append(localize_city(data, lang, default_lang))
        return jsonify({'cities': cities})
    finally:
        db.close()


def _city_detail(db, city):
    areas = _area_order(
        db.query(Area).filter(Area.city_id == city.id, Area.is_active.is_(True))
    ).all()
    city_data = city.to_dict()
    areas_data = [a.to_dict(include_city=False) for a in areas]
    if wants_raw():
        return jsonify({'city': city_data, 'areas': areas_data})
    lang, default_lang = request_language(db)
    return jsonify({
        'city': localize_city(city_data, lang, default_lang),
        'areas': [localize_area(a, lang, default_lang) for a in areas_data],
    })


@locations_bp.route('/cities/<int:city_id>', methods=['GET'])
def get_city(city_id):
    db = get_db()
    try:
        city = db.get(City, city_id)
        if not city:
            return jsonify({'error': 'City not found'}), 404
        return _city_detail(db, city)
    finally:
        db.close()


@locations_bp.route('/cities/slug/<slug>', methods=['GET'])
def get_city_by_slug(slug):
    db = get_db()
    try:
        city = db.query(City).filter(City.slug == slug).first()
        if not city:
            return jsonify({'error': 'City not found'}), 404
        return _city_detail(db, city)
    finally:
        db.close()


def _apply_city(city, changes):
    for key in ('name', 'state'):
        if key in changes:
            setattr(city, key, dict(changes[key] or {}))
    for key in ('location', 'population', 'image'):
        if key in changes:
            setattr(city, key, changes[key])
    for key in ('country', 'timezone', 'is_active', 'is_featured', 'order'):
        if changes.get(key) is not None:
            setattr(city, key, changes[key])
    if changes.get('center'):
        city.center_lng, city.center_lat = changes['center']['coordinates']


@locations_bp.route('/cities', methods=['POST'])
@admin_required
@validate_body(CityCreate)
def create_city():
    db = get_db()
    try:
        city = City()
        _apply_city(city, g.body.changes())
        db.add(city)
        db.commit()
        db.refresh(city)
        invalidate_cache(CACHE_PREFIX)
        return jsonify({'message': 'City created', 'city': city.to_dict()}), 201
    finally:
        db.close()


@locations_bp.route('/cities/<int:city_id>', methods=['PUT'])
@admin_required
@validate_body(CityUpdate)
def update_city(city_id):
    db = get_db()
    try:
        city = db.get(City, city_id)
        if not city:
            return jsonify({'error': 'City not found'}), 404
        _apply_city(city, g.body.changes())
        db.commit()
        db.refresh(city)
        invalidate_cache(CACHE_PREFIX)
        return jsonify({'message': 'City updated', 'city': city.to_dict()})
    finally:
        db.close()


@locations_bp.route('/cities/<int:city_id>', methods=['DELETE'])
@admin_required
def delete_city(city_id):
    db = get_db()
    try:
        city = db.get(City, city_id)
        if not city:
            return jsonify({'error': 'City not found'}), 404
        city.is_active = False
        db.query(Area).filter(Area.city_id == city.id).update(
            {Area.is_active: False}, synchronize_session=False
        )
        db.commit()
        invalidate_cache(CACHE_PREFIX)
        return jsonify({'message': 'City deactivated'})
    finally:
        db.close()


# ==================== Areas ====================

@locations_bp.route('/areas', methods=['GET'])
def list_areas():
    search = (request.args.get('search') or '').strip()

    db = get_db()
    try:
        query = db.query(Area).filter(Area.is_active.is_(True))
        city = request.args.get('city')
        if city:
            city_id = parse_int(city, None)
            if city_id is None:
                return jsonify({'error': 'Invalid city id'}), 400
            query = query.filter(Area.city_id == city_id)
        if parse_bool(request.args.get('featured'), False):
            query = query.filter(Area.is_featured.is_(True))
        areas = _area_order(query).all()

        if search:
            term = search.lower()
            areas = [
                a for a in areas
                if _matches(a.name, search)
                or term in (a.pincode or '').lower()
                or any(term in p.lower() for p in (a.pincodes or []))
            ]

        data = [a.to_dict() for a in areas]
        if wants_raw():
            return jsonify({'areas': data})
        lang, default_lang = request_language(db)
        return jsonify({'areas': [localize_area(a, lang, default_lang) for a in data]})
    finally:
        db.close()


@locations_bp.route('/areas/nearby', methods=['GET'])
def nearby_areas():
    db = get_db()
    try:
        scored = _nearby(db, Area, 5000)
        if scored is None:
            return jsonify({'error': 'Longitude and latitude are required'}), 400
        lang, default_lang = request_language(db)
        areas = []
        for meters, area in scored:
            data = area.to_dict()
            data['distance'] = round(meters)
            areas.append(localize_area(data, lang, default_lang))
        return jsonify({'areas': areas})
    finally:
        db.close()


@locations_bp.route('/areas/containing', methods=['GET'])
def areas_containing_point():
    lng = parse_float(request.args.get('lng'))
    lat = parse_float(request.args.get('lat'))
    if lng is None or lat is None:
        return jsonify({'error': 'Longitude and latitude are required'}), 400

    db = get_db()
    try:
        candidates = _area_order(
            db.query(Area).filter(Area.is_active.is_(True), Area.boundary.isnot(None))
        ).all()
        matches = [a for a in candidates if point_in_polygon(lng, lat, a.boundary)]
        data = [a.to_dict() for a in matches]
        if wants_raw():
            return jsonify({'areas': data})
        lang, default_lang = request_language(db)
        return jsonify({'areas': [localize_area(a, lang, default_lang) for a in data]})
    finally:
        db.close()


@locations_bp.route('/areas/<int:area_id>', methods=['GET'])
def get_area(area_id):
    db = get_db()
    try:
        area = db.get(Area, area_id)
        if not area:
            return jsonify({'error': 'Area not found'}), 404
        data = area.to_dict()
        if wants_raw():
            return jsonify({'area': data})
        lang, default_lang = request_language(db)
        return jsonify({'area': localize_area(data, lang, default_lang)})
    finally:
        db.close()


def _apply_area(area, changes):
    if 'name' in changes:
        area.name = dict(changes['name'] or {})
    if changes.get('city') is not None:
        area.city_id = changes['city']
    if 'boundary' in changes:
        area.boundary = changes['boundary']
    if changes.get('center'):
        area.center_lng, area.center_lat = changes['center']['coordinates']
    if 'pincode' in changes:
        area.pincode = changes['pincode']
    if 'pincodes' in changes:
        area.pincodes = list(changes['pincodes'] or [])
    for key in ('is_active', 'is_featured', 'order'):
        if changes.get(key) is not None:
            setattr(area, key, changes[key])


@locations_bp.route('/areas', methods=['POST'])
@admin_required
@validate_body(AreaCreate)
def create_area():
    changes = g.body.changes()
    db = get_db()
    try:
        if db.get(City, changes['city']) is None:
            return jsonify({'error': 'Invalid city'}), 400
        area = Area(pincodes=[])
        _apply_area(area, changes)
        db.add(area)
        db.commit()
        db.refresh(area)
        return jsonify({'message': 'Area created', 'area': area.to_dict()}), 201
    finally:
        db.close()


@locations_bp.route('/areas/<int:area_id>', methods=['PUT'])
@admin_required
@validate_body(AreaUpdate)
def update_area(area_id):
    changes = g.body.changes()
    db = get_db()
    try:
        area = db.get(Area, area_id)
        if not area:
            return jsonify({'error': 'Area not found'}), 404
        if changes.get('city') is not None and db.get(City, changes['city']) is None:
            return jsonify({'error': 'Invalid city'}), 400
        _apply_area(area, changes)
        db.commit()
        db.refresh(area)
        return jsonify({'message': 'Area updated', 'area': area.to_dict()})
    finally:
        db.close()


@locations_bp.route('/areas/<int:area_id>', methods=['DELETE'])
@admin_required
def delete_area(area_id):
    db = get_db()
    try:
        area = db.get(Area, area_id)
        if not area:
            return jsonify({'error': 'Area not found'}), 404
        area.is_active = False
        db.commit()
        return jsonify({'message': 'Area deactivated'})
    finally:
        db.close()


@locations_bp.route('/states', methods=['GET'])
@cached(ttl=300, key_prefix=CACHE_PREFIX)
def list_states():
    db = get_db()
    try:
        lang, default_lang = request_language(db)
        states = {}
        for city in db.query(City).filter(City.is_active.is_(True)).all():
            if not city.state:
                continue
            key = localize(city.state, 'en', 'en')
            entry = states.setdefault(key, {'name': dict(city.state), 'city_count': 0})
            entry['city_count'] += 1

        result = [
            {
                'name': localize(s['name'], lang, default_lang),
                '_multilingual': {'name': s['name']},
                'city_count': s['city_count'],
            }
            for s in states.values()
        ]
        result.sort(key=lambda s: s['name'].lower())
        return jsonify({'states': result})
    finally:
        db.close()
