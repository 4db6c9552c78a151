import os, sys, pytest
# Ensure the backend directory is on path so 'backoffice' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import backoffice
from backoffice import create_app
from backoffice.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import backoffice.models.ticket  # noqa: F401
import backoffice.models.category  # noqa: F401
import backoffice.models.technician  # noqa: F401
import backoffice.models.payment  # noqa: F401
import backoffice.models.audit  # noqa: F401
from tests.test_lifecycle_helpers import RecordingOutbox
from tests.test_utils_seed import OPS_NUMBERS


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'SMS_API_URL': '',
        'OPS_NOTIFY_NUMBERS': list(OPS_NUMBERS),
        'CUSTOMER_CARE_NUMBER': '+254700000099',
        'TESTING': True,
    })
    yield app


@pytest.fixture(autouse=True)
def fresh_db(app_instance):
    # every test starts from empty tables and an empty identity map
    backoffice.SessionLocal.remove()
    Base.metadata.drop_all(backoffice.db_engine)
    Base.metadata.create_all(backoffice.db_engine)
    yield
    backoffice.SessionLocal.remove()


@pytest.fixture(autouse=True)
def outbox(app_instance):
    original = app_instance.extensions['notifier']
    recorder = RecordingOutbox()
    app_instance.extensions['notifier'] = recorder
    yield recorder
    app_instance.extensions['notifier'] = original


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
