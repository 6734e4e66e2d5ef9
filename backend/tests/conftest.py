import pytest
import sys
from pathlib import Path

# Add backend directory to path so imports work
backend_path = Path(__file__).parent.parent
sys.path.append(str(backend_path))

from analyzer import RiskAnalyzer
from config_store import ConfigStore
from trigger_db import TriggerDatabase

SCENARIO_TEXT = "consegui comprar meu carro novo, corpo perfeito, vejam minha vida perfeita"
NEUTRAL_TEXT = "o gato dormiu na janela durante a tarde"
TOXIC_TONE_TEXT = "i really hate rainy mondays at the office"
INSTAGRAM = "com.instagram.android"


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def trigger_db(tmp_path):
    # Empty directory: built-in defaults only, never whatever is on disk
    return TriggerDatabase(db_path=str(tmp_path))


@pytest.fixture
def config_store(trigger_db):
    return ConfigStore(trigger_db)


@pytest.fixture
def analyzer(config_store):
    return RiskAnalyzer(config_store)


@pytest.fixture
def fake_clock():
    return FakeClock()
