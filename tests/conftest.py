import pytest
from fastapi.testclient import TestClient

from cipherledger.api.main import app, install_ledger

from support import make_ledger


# Fresh in-memory ledger for every test
@pytest.fixture
def ledger():
    ledger = make_ledger()
    install_ledger(ledger)
    yield ledger
    install_ledger(None)
    ledger.close()


@pytest.fixture
def client(ledger):
    return TestClient(app)
