"""Seed database with languages, categories, locations and staff accounts"""
import os

from auth_utils import hash_password
from models import Area, Category, City, Language, User, get_db, init_db
import language_cache

LANGUAGES = [
    {'code': 'en', 'name': 'English', 'native_name': 'English', 'is_default': True, 'order': 1},
    {'code': 'hi', 'name': 'Hindi', 'native_name': 'हिन्दी', 'order': 2},
    {'code': 'te', 'name': 'Telugu', 'native_name': 'తెలుగు', 'order': 3},
]

CATEGORIES = [
    {
        'name': {'en': 'Politics', 'hi': 'राजनीति', 'te': 'రాజకీయాలు'},
        'description': {'en': 'Political news and updates'},
        'icon': 'gavel', 'color': '#d32f2f', 'order': 1, 'is_featured': True,
    },
    {
        'name': {'en': 'Business', 'hi': 'व्यापार', 'te': 'వ్యాపారం'},
        'description': {'en': 'Business and economy news'},
        'icon': 'business', 'color': '#1976d2', 'order': 2, 'is_featured': True,
    },
    {
        'name': {'en': 'Sports', 'hi': 'खेल', 'te': 'క్రీడలు'},
        'description': {'en': 'Sports news and scores'},
        'icon': 'sports', 'color': '#388e3c', 'order': 3, 'is_featured': True,
        'children': [
            {'name': {'en': 'Cricket', 'hi': 'क्रिकेट', 'te': 'క్రికెట్'}, 'icon': 'sports_cricket', 'order': 1},
            {'name': {'en': 'Football', 'hi': 'फ़ुटबॉल', 'te': 'ఫుట్‌బాల్'}, 'icon': 'sports_soccer', 'order': 2},
        ],
    },
    {
        'name': {'en': 'Entertainment', 'hi': 'मनोरंजन', 'te': 'వినోదం'},
        'description': {'en': 'Entertainment and celebrity news'},
        'icon': 'movie', 'color': '#7b1fa2', 'order': 4, 'is_featured': True,
    },
    {
        'name': {'en': 'Technology', 'hi': 'प्रौद्योगिकी', 'te': 'టెక్నాలజీ'},
        'description': {'en': 'Tech news and gadgets'},
        'icon': 'computer', 'color': '#0288d1', 'order': 5,
    },
    {
        'name': {'en': 'Local News', 'hi': 'स्थानीय समाचार', 'te': 'స్థానిక వార్తలు'},
        'description': {'en': 'News from your locality'},
        'icon': 'location_on', 'color': '#f57c00', 'order': 6, 'is_featured': True,
    },
]

CITIES = [
    {
        'name': {'en': 'Hyderabad', 'hi': 'हैदराबाद', 'te': 'హైదరాబాద్'},
        'state': {'en': 'Telangana', 'hi': 'तेलंगाना', 'te': 'తెలంగాణ'},
        'center': (78.4867, 17.3850), 'population': 6809970, 'is_featured': True, 'order': 1,
        'areas': [
            ({'en': 'Banjara Hills', 'hi': 'बंजारा हिल्स', 'te': 'బంజారా హిల్స్'}, (78.4445, 17.4156), '500034'),
            ({'en': 'HITEC City', 'hi': 'हाईटेक सिटी', 'te': 'హైటెక్ సిటీ'}, (78.3772, 17.4435), '500081'),
            ({'en': 'Gachibowli', 'hi': 'गच्चीबोवली', 'te': 'గచ్చిబౌలి'}, (78.3498, 17.4401), '500032'),
            ({'en': 'Secunderabad', 'hi': 'सिकंदराबाद', 'te': 'సికింద్రాబాద్'}, (78.4983, 17.4399), '500003'),
        ],
    },
    {
        'name': {'en': 'Vijayawada', 'hi': 'विजयवाड़ा', 'te': 'విజయవాడ'},
        'state': {'en': 'Andhra Pradesh', 'hi': 'आंध्र प्रदेश', 'te': 'ఆంధ్ర ప్రదేశ్'},
        'center': (80.6480, 16.5062), 'population': 1048240, 'is_featured': True, 'order': 2,
        'areas': [
            ({'en': 'Governorpet', 'hi': 'गवर्नरपेट', 'te': 'గవర్నర్‌పేట'}, (80.6220, 16.5180), '520002'),
            ({'en': 'Labbipet', 'hi': 'लब्बीपेट', 'te': 'లబ్బీపేట'}, (80.6380, 16.5040), '520010'),
        ],
    },
    {
        'name': {'en': 'Visakhapatnam', 'hi': 'विशाखापत्तनम', 'te': 'విశాఖపట్నం'},
        'state': {'en': 'Andhra Pradesh', 'hi': 'आंध्र प्रदेश', 'te': 'ఆంధ్ర ప్రదేశ్'},
        'center': (83.2185, 17.6868), 'population': 2035922, 'order': 3,
    },
    {
        'name': {'en': 'Warangal', 'hi': 'वारंगल', 'te': 'వరంగల్'},
        'state': {'en': 'Telangana', 'hi': 'तेलंगाना', 'te': 'తెలంగాణ'},
        'center': (79.5941, 17.9784), 'population': 811844, 'order': 4,
    },
]

STAFF = [
    {
        'name': 'Admin User',
        'email': os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com'),
        'password': os.getenv('SEED_ADMIN_PASSWORD', 'admin123'),
        'role': 'admin',
    },
    {
        'name': 'Reporter User',
        'email': os.getenv('SEED_REPORTER_EMAIL', 'reporter@example.com'),
        'password': os.getenv('SEED_REPORTER_PASSWORD', 'reporter123'),
        'role': 'reporter',
    },
]


def _seed_languages(db):
    added = 0
    for entry in LANGUAGES:
        if db.query(Language.id).filter(Language.code == entry['code']).first():
            continue
        db.add(Language(is_active=True, is_rtl=False, **entry))
        added += 1
    db.commit()
    language_cache.invalidate()
    return added


def _seed_categories(db, entries, parent=None):
    added = 0
    for entry in entries:
        entry = dict(entry)
        children = entry.pop('children', [])
        siblings = db.query(Category).filter(Category.parent_id == (parent.id if parent else None)).all()
        category = next((c for c in siblings if (c.name or {}).get('en') == entry['name']['en']), None)
        if category is None:
            entry.setdefault('description', {})
            category = Category(parent_id=parent.id if parent else None, **entry)
            db.add(category)
            db.commit()
            added += 1
        added += _seed_categories(db, children, category)
    return added


def _seed_cities(db):
    added = 0
    existing = {(c.name or {}).get('en'): c for c in db.query(City).all()}
    for entry in CITIES:
        entry = dict(entry)
        areas = entry.pop('areas', [])
        lng, lat = entry.pop('center')
        city = existing.get(entry['name']['en'])
        if city is None:
            city = City(
                center_lng=lng, center_lat=lat,
                location={'type': 'Point', 'coordinates': [lng, lat]},
                **entry,
            )
            db.add(city)
            db.commit()
            added += 1

        area_names = {(a.name or {}).get('en') for a in db.query(Area).filter(Area.city_id == city.id).all()}
        for name, (a_lng, a_lat), pincode in areas:
            if name['en'] in area_names:
                continue
            db.add(Area(
                name=name, city_id=city.id, center_lng=a_lng, center_lat=a_lat,
                pincode=pincode, pincodes=[pincode],
            ))
            added += 1
        db.commit()
    return added


def _seed_staff(db):
    added = 0
    for entry in STAFF:
        email = entry['email'].lower()
        if db.query(User.id).filter(User.email == email).first():
            continue
        db.add(User(
            name=entry['name'],
            email=email,
            password_hash=hash_password(entry['password']),
            role=entry['role'],
            is_active=True,
        ))
        added += 1
    db.commit()
    return added


def seed_database():
    """Populate the database with initial data. Safe to run repeatedly."""
    print("🌱 Seeding database...")

    init_db()
    db = get_db()

    try:
        print(f"✅ Languages added: {_seed_languages(db)}")
        print(f"✅ Categories added: {_seed_categories(db, CATEGORIES)}")
        print(f"✅ Cities/areas added: {_seed_cities(db)}")
        print(f"✅ Staff accounts added: {_seed_staff(db)}")
        print("🎉 Database seeded successfully!")
    except Exception as e:
        print(f"❌ Error seeding database: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
