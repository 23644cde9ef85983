"""Common test fixtures for gpioscope tests."""

import os

# Qt must not need a display for the scheduler and settings tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtCore import QSettings

from gpioscope.data_model import ViewMode
from gpioscope.scope_controller import ScopeController
from gpioscope.session import ScopeSession
from gpioscope.sample_store import SampleStore
from gpioscope.settings_manager import SettingsManager
from gpioscope.trigger_engine import TriggerEngine
from gpioscope.view_window import ViewWindow
from .test_utils import FakeLink


@pytest.fixture
def engine():
    return TriggerEngine()


@pytest.fixture
def live_view():
    return ViewWindow(mode=ViewMode.LIVE)


@pytest.fixture
def fake_link():
    return FakeLink()


@pytest.fixture
def controller(fake_link):
    """Controller on a small store whose link factory hands out ``fake_link``."""
    calls = []

    def factory(host, port):
        calls.append((host, port))
        return fake_link

    ctrl = ScopeController(
        session=ScopeSession(store=SampleStore(1000)),
        link_factory=factory,
        environ={},
    )
    ctrl.factory_calls = calls
    return ctrl


@pytest.fixture
def settings_manager(qapp, tmp_path):
    """The settings singleton bound to a throwaway ini file."""
    manager = SettingsManager()
    manager.use_settings(QSettings(str(tmp_path / "scope.ini"), QSettings.Format.IniFormat))
    return manager
