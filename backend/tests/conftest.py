import os, sys, pytest
# Ensure the backend directory is on path so 'milicard' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import milicard
from milicard import create_app, get_db
from milicard.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import milicard.models.audit  # noqa: F401
import milicard.models.operating_base  # noqa: F401
import milicard.models.goods  # noqa: F401
import milicard.models.location  # noqa: F401
import milicard.models.personnel  # noqa: F401
import milicard.models.supplier  # noqa: F401
import milicard.models.purchase_order  # noqa: F401
import milicard.models.arrival  # noqa: F401
import milicard.models.transfer  # noqa: F401
import milicard.models.stock_out  # noqa: F401
import milicard.models.point  # noqa: F401
import milicard.models.sales  # noqa: F401
import milicard.models.settings  # noqa: F401
import milicard.models.data_permission  # noqa: F401
from milicard.services import currency, translations


@pytest.fixture()
def app_instance(tmp_path):
    # a fresh in-memory database per test keeps generated codes and stock independent
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'UPLOAD_PATH': str(tmp_path / 'uploads'),
        'BASE_URL': 'http://testserver',
        'TESTING': True,
    })
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    currency.reset_cache()
    translations.invalidate()
    yield app
    milicard.SessionLocal.remove()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()
