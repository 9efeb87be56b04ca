import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from network_blocker import install_network_blocker  # noqa: E402
from tile_fakes import encode_lines  # noqa: E402


@pytest.fixture(autouse=True)
def _default_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    install_network_blocker(monkeypatch)


@pytest.fixture
def mvt_diagonal() -> bytes:
    return encode_lines([(0, 0), (4096, 4096)])
