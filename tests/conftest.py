import pytest
from tourney.app import create_app, db


class InOrder:
    """Stand-in for ``random.Random`` that leaves sequences untouched."""

    def shuffle(self, sequence):
        return None


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def in_order():
    return InOrder()
