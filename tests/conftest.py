from collections.abc import Generator

import pytest

from src.provisioner.core.security import clear_captured_password
from src.provisioner.core.services.directory.session import reset_session_registry
from src.provisioner.core.storage.session_storage import _reset_storage
from tests.fixtures import *  # noqa: F401,F403


@pytest.fixture(autouse=True)
def _reset_process_state() -> Generator[None]:
    yield
    clear_captured_password()
    reset_session_registry()
    _reset_storage()
