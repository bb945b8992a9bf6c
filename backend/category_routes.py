"""Category endpoints: hierarchy, breadcrumbs and admin CRUD"""
import logging

from flask import Blueprint, g, jsonify, request

from api_cache import cached, invalidate_cache
from auth_utils import admin_required
from localization import localize_breadcrumb, localize_category, request_language, wants_raw
from models import Article, Category, get_db
from schemas import CategoryCreate, CategoryUpdate, ReorderRequest, validate_body
from utils import parse_bool

logger = logging.getLogger(__name__)

categories_bp = Blueprint('categories', __name__, url_prefix='/api/categories')

CACHE_PREFIX = 'categories'


def descendant_ids(db, category_id):
    """Ids of every category below `category_id` (any depth)"""
    rows = db.query(Category.id, Category.ancestors).all()
    return [row.id for row in rows if category_id in [a.get('id') for a in (row.ancestors or [])]]


def subtree_ids(db, category_id):
    return [category_id] + descendant_ids(db, category_id)


def refresh_descendants(db, category):
    """
    Rebuild the ancestor chains below `category` after it moved or was renamed,
    and the category_ancestors of articles filed anywhere in the subtree.
    """
    below = db.query(Category).filter(Category.id.in_(descendant_ids(db, category.id))).all() \
        if category.id else []
    by_id = {c.id: c for c in below}
    by_id[category.id] = category

    for child in sorted(below, key=lambda c: c.level or 0):
        parent = by_id.get(child.parent_id) or db.get(Category, child.parent_id)
        child.ancestors = list(parent.ancestors or []) + [parent.breadcrumb_entry()]
        child.level = (parent.level or 0) + 1

    for cat in by_id.values():
        db.query(Article).filter(Article.category_id == cat.id).update(
            {Article.category_ancestors: cat.ancestor_ids()}, synchronize_session=False
        )


def build_tree(categories):
    nodes = {}
    for cat in categories:
        node = cat.to_dict()
        node['children'] = []
        nodes[cat.id] = node
    roots = []
    for cat in categories:
        node = nodes[cat.id]
        parent = nodes.get(cat.parent_id) if cat.parent_id else None
        if parent is not None:
            parent['children'].append(node)
        elif cat.parent_id is None:
            roots.append(node)
    return roots


def _ordered(query):
    return query.order_by(Category.order.asc(), Category.id.asc())


def _detail_response(db, category):
    children = _ordered(
        db.query(Category).filter(Category.parent_id == category.id, Category.is_active.is_(True))
    ).all()
    data = category.to_dict()
    if category.parent_id:
        parent = db.get(Category, category.parent_id)
        if parent is not None:
            data['parent'] = {'id': parent.id, 'name': dict(parent.name or {}), 'slug': parent.slug}
    children_data = [c.to_dict() for c in children]
    breadcrumb = category.breadcrumb()

    if wants_raw():
        return jsonify({'category': data, 'children': children_data, 'breadcrumb': breadcrumb})

    lang, default_lang = request_language(db)
    localized = localize_category(data, lang, default_lang)
    if isinstance(data.get('parent'), dict):
        localized['parent'] = localize_breadcrumb([data['parent']], lang, default_lang)[0]
    return jsonify({
        'category': localized,
        'children': [localize_category(c, lang, default_lang) for c in children_data],
        'breadcrumb': localize_breadcrumb(breadcrumb, lang, default_lang),
    })


@categories_bp.route('', methods=['GET'])
@categories_bp.route('/', methods=['GET'])
def list_categories():
    active = parse_bool(request.args.get('active'), True)
    parent = request.args.get('parent')
    featured = parse_bool(request.args.get('featured'), False)

    db = get_db()
    try:
        query = db.query(Category)
        if active:
            query = query.filter(Category.is_active.is_(True))
        if parent == 'null':
            query = query.filter(Category.parent_id.is_(None))
        elif parent:
            try:
                query = query.filter(Category.parent_id == int(parent))
            except ValueError:
                return jsonify({'error': 'Invalid parent id'}), 400
        if featured:
            query = query.filter(Category.is_featured.is_(True))

        categories = [c.to_dict() for c in _ordered(query).all()]
        if wants_raw():
            return jsonify({'categories': categories})

        lang, default_lang = request_language(db)
        return jsonify({'categories': [localize_category(c, lang, default_lang) for c in categories]})
    finally:
        db.close()


@categories_bp.route('/tree', methods=['GET'])
@cached(ttl=300, key_prefix=CACHE_PREFIX)
def category_tree():
    db = get_db()
    try:
        categories = _ordered(db.query(Category).filter(Category.is_active.is_(True))).all()
        tree = build_tree(categories)
        lang, default_lang = request_language(db)
        return jsonify({'categories': [localize_category(node, lang, default_lang) for node in tree]})
    finally:
        db.close()


@categories_bp.route('/<int:category_id>', methods=['GET'])
def get_category(category_id):
    db = get_db()
    try:
        category = db.get(Category, category_id)
        if not category:
            return jsonify({'error': 'Category not found'}), 404
        return _detail_response(db, category)
    finally:
        db.close()


@categories_bp.route('/slug/<slug>', methods=['GET'])
def get_category_by_slug(slug):
    db = get_db()
    try:
        category = db.query(Category).filter(Category.slug == slug).first()
        if not category:
            return jsonify({'error': 'Category not found'}), 404
        return _detail_response(db, category)
    finally:
        db.close()


def _apply(category, changes):
    mapping = {
        'name': 'name', 'description': 'description', 'parent': 'parent_id', 'icon': 'icon',
        'color': 'color', 'image': 'image', 'order': 'order', 'is_active': 'is_active',
        'is_featured': 'is_featured',
    }
    for key, attr in mapping.items():
        if key not in changes:
            continue
        value = changes[key]
        if key in ('name', 'description'):
            value = dict(value or {})
        elif key == 'color' and not value:
            value = '#1976d2'
        setattr(category, attr, value)


@categories_bp.route('', methods=['POST'])
@categories_bp.route('/', methods=['POST'])
@admin_required
@validate_body(CategoryCreate)
def create_category():
    changes = g.body.changes()
    db = get_db()
    try:
        if changes.get('parent') is not None and db.get(Category, changes['parent']) is None:
            return jsonify({'error': 'Parent category not found'}), 400

        category = Category(description={})
        _apply(category, changes)
        db.add(category)
        db.commit()
        db.refresh(category)
        invalidate_cache(CACHE_PREFIX)
        logger.info(f"[CATEGORY] created {category.id} ({category.slug})")
        return jsonify({'message': 'Category created', 'category': category.to_dict()}), 201
    finally:
        db.close()


@categories_bp.route('/<int:category_id>', methods=['PUT'])
@admin_required
@validate_body(CategoryUpdate)
def update_category(category_id):
    changes = g.body.changes()
    db = get_db()
    try:
        category = db.get(Category, category_id)
        if not category:
            return jsonify({'error': 'Category not found'}), 404

        if changes.get('parent') is not None:
            if changes['parent'] in subtree_ids(db, category_id):
                return jsonify({'error': 'A category cannot be moved under itself or its subcategories'}), 400
            if db.get(Category, changes['parent']) is None:
                return jsonify({'error': 'Parent category not found'}), 400

        _apply(category, changes)
        db.flush()
        if 'parent' in changes or 'name' in changes:
            refresh_descendants(db, category)
        db.commit()
        db.refresh(category)
        invalidate_cache(CACHE_PREFIX)
        return jsonify({'message': 'Category updated', 'category': category.to_dict()})
    finally:
        db.close()


@categories_bp.route('/<int:category_id>', methods=['DELETE'])
@admin_required
def delete_category(category_id):
    db = get_db()
    try:
        if db.query(Category.id).filter(Category.parent_id == category_id).first():
            return jsonify({
                'error': 'Cannot delete category with subcategories. Delete or move subcategories first.'
            }), 400
        category = db.get(Category, category_id)
        if not category:
            return jsonify({'error': 'Category not found'}), 404
        category.is_active = False
        db.commit()
        invalidate_cache(CACHE_PREFIX)
        return jsonify({'message': 'Category deactivated'})
    finally:
        db.close()


@categories_bp.route('/reorder', methods=['PUT'])
@admin_required
@validate_body(ReorderRequest)
def reorder_categories():
    db = get_db()
    try:
        for item in g.body.items:
            db.query(Category).filter(Category.id == item.id).update(
                {Category.order: item.order}, synchronize_session=False
            )
        db.commit()
        invalidate_cache(CACHE_PREFIX)
        return jsonify({'message': 'Categories reordered'})
    finally:
        db.close()
