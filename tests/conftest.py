import pytest
import uuid

from roomshop import create_app
from roomshop import database
from roomshop.database import Base, get_session
from roomshop.models import User, Room, RoomMember, Product
from roomshop.services import broadcast_service


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False
    with app.app_context():
        database.drop_all()
        database.create_all()
        yield app
        get_session().remove()
        database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.expunge_all()


@pytest.fixture(scope='function')
def make_user(session):
    """Factory for users with unique emails."""
    def _make_user(name='User', coins=0, balance=0, level='bronze', is_admin=False):
        suffix = str(uuid.uuid4())[:8]
        user = User(
            email=f'{name.lower().replace(" ", "-")}-{suffix}@test.com',
            name=name,
            coins=coins,
            balance=balance,
            subscription_level=level,
            is_admin=is_admin,
            active=True
        )
        user.set_password('password123')
        session.add(user)
        session.commit()
        return user
    return _make_user


@pytest.fixture(scope='function')
def seller(make_user):
    return make_user('Seller')


@pytest.fixture(scope='function')
def buyer(make_user):
    return make_user('Buyer', balance=20)


@pytest.fixture(scope='function')
def other_buyer(make_user):
    return make_user('Other Buyer')


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user('Admin', is_admin=True)


@pytest.fixture(scope='function')
def room(session, seller):
    """Room owned by the seller."""
    suffix = str(uuid.uuid4())[:8]
    room = Room(owner_id=seller.id, name=f'Test Room {suffix}', type='public')
    session.add(room)
    session.flush()
    session.add(RoomMember(room_id=room.id, user_id=seller.id, role='moderator', status='approved'))
    session.commit()
    return room


@pytest.fixture(scope='function')
def make_product(session, room):
    """Factory for products in the seller's room."""
    def _make_product(name='Product', price=500, stock=10, status='active'):
        product = Product(room_id=room.id, name=name, price=price, stock=stock, status=status)
        session.add(product)
        session.commit()
        return product
    return _make_product


@pytest.fixture(scope='function')
def product(make_product):
    return make_product('Mug', price=500, stock=10)


@pytest.fixture(scope='function')
def second_product(make_product):
    return make_product('Poster', price=300, stock=5)


@pytest.fixture(scope='function')
def shipping():
    return {
        'phone_number': '+96170000000',
        'address': '12 Main Street',
        'city': 'Beirut',
        'delivery_notes': 'Ring twice',
        'placed_from': 'store',
    }


@pytest.fixture(scope='function')
def published_events(app, monkeypatch):
    """Record events the broadcaster would have published."""
    events = []

    def fake_publish(channels, event_name, payload):
        events.append({'channels': list(channels), 'event': event_name, 'data': payload})
        return True

    monkeypatch.setattr(broadcast_service.get_broadcaster(), 'publish', fake_publish)
    return events


@pytest.fixture(scope='function')
def login(client):
    """Return a helper that authenticates the test client as a user."""
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
        return client
    return _login
