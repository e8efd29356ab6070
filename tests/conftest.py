import logging
import pathlib
import site

import pytest
from sqlbean import bean

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def isolate_converter_registry():
    """Restore the process-wide converter registry after each test."""
    with bean._converter_registry_lock:
        saved = dict(bean._converter_registry)
    yield
    with bean._converter_registry_lock:
        bean._converter_registry.clear()
        bean._converter_registry.update(saved)


@pytest.fixture(autouse=True)
def sqlbean_debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger='sqlbean')


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
