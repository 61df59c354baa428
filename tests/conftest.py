import pytest

from quiesce import set_dev_mode


@pytest.fixture(autouse=True)
def _follow_environment_dev_mode():
    set_dev_mode(None)
    yield
    set_dev_mode(None)
