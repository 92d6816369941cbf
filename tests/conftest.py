"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from uiflow.core.clock import Clock  # noqa: E402
from uiflow.core.events import EventBus, EventRecorder  # noqa: E402
from uiflow.core.models import MS_PER_DAY  # noqa: E402
from uiflow.engine.interaction_store import InteractionStore  # noqa: E402
from uiflow.engine.progression import ProgressionController  # noqa: E402

# Fixed engine time for deterministic tests (2024-01-01T00:00:00Z)
START_MS = 1_704_067_200_000


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full controller wiring)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class ManualTime:
    """Settable millisecond time source."""

    def __init__(self, start: int = START_MS):
        self.ms = start

    def __call__(self) -> int:
        return self.ms

    def advance(self, ms: int = 0, days: float = 0) -> int:
        self.ms += ms + int(days * MS_PER_DAY)
        return self.ms


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def manual_time():
    """Provide a settable time source starting at START_MS."""
    return ManualTime()


@pytest.fixture
def clock(manual_time):
    """Provide a clock driven by manual_time."""
    return Clock(time_source=manual_time)


@pytest.fixture
def store(clock):
    """Provide an empty InteractionStore."""
    return InteractionStore(clock)


@pytest.fixture
def settings():
    """Provide default settings isolated from the environment."""
    return Settings(_env_file=None, simulation_seed=42)


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def controller(settings, clock, recorder):
    """Provide a ProgressionController recording every event; destroyed after the test."""
    engine = ProgressionController(settings=settings, events=EventBus(), clock=clock)
    engine.subscribe(None, recorder)
    yield engine
    engine.destroy()


@pytest.fixture
def editor_document():
    """Provide a small flow configuration with one dependency chain and a rule."""
    return {
        "name": "Editor Flow",
        "version": "2.1.0",
        "areas": {
            "editor": {
                "elements": [
                    {"id": "open-file", "category": "basic", "helpText": "Open a document"},
                    {"id": "save-file", "category": "basic"},
                    {
                        "id": "export",
                        "category": "advanced",
                        "dependencies": [{"type": "usage_count", "elementId": "open-file", "threshold": 3}],
                    },
                    {
                        "id": "macros",
                        "category": "expert",
                        "dependencies": [{"type": "logical_and", "elements": ["export"]}],
                    },
                ]
            },
            "settings": {
                "elements": [
                    {"id": "theme", "category": "basic"},
                    {"id": "plugins", "category": "advanced"},
                ]
            },
        },
        "rules": [
            {
                "name": "welcome-tour",
                "trigger": {"type": "element_interaction", "elements": ["open-file"]},
                "action": {"type": "show_tutorial", "data": {"tutorial": "editor-basics"}},
            },
            {
                "name": "unlock-plugins",
                "trigger": {"type": "time_based", "threshold": 5},
                "action": {"type": "unlock_element", "elementId": "plugins"},
            },
        ],
    }
