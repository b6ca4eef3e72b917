import os
import sys

import pytest


def pytest_configure():
    # Ensure the repository root is importable for `yamlcrypt.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    if root not in sys.path:
        sys.path.insert(0, root)


KEY = "aehae5Ui0Eechaeghau9Yoh9jufiep7H"
OTHER_KEY = "Oa6aihaeghoo9oo5iequ3oqueeZ2Eit4"

FERNET_TOKEN = (
    "gAAAAAAAAAABAAECAwQFBgcICQoLDA0OD7nQ_JQsjDx78n7mQ9bW3T-rgiTN7WX3Uq66EDA0qxZDNQppXL6WaOAIW4x8ElmcRg=="
)
BRANCA_TOKEN = "XUvrtHkyXTh1VUW885Ta4V5eQ3hBMFQMC3S3QwEfWzKWVDt3A5TnVUNtVXubi0fsAA8eerahpobwC8"


@pytest.fixture
def registry():
    """Algorithms with a frozen clock and fixed IV/nonce."""
    from yamlcrypt.crypto import AlgorithmRegistry, Branca, Fernet

    return AlgorithmRegistry(
        [
            Fernet(clock=lambda: 1, random_bytes=lambda n: bytes(range(n))),
            Branca(clock=lambda: 1, random_bytes=lambda n: b"\x01" * n),
        ]
    )


@pytest.fixture(autouse=True)
def no_config_override(monkeypatch):
    monkeypatch.delenv("YAML_CRYPT_CONFIG", raising=False)
