import pytest

from stampede_guard.config import USER_STATE_KEY
from stampede_guard.core.admin import AdminConsole
from stampede_guard.core.monitor import SafetyMonitor
from stampede_guard.core.shell import AppShell
from stampede_guard.models.schemas import SafetyLevel


@pytest.fixture
def shell(bus):
    s = AppShell(bus, AdminConsole(bus))
    yield s
    s.close()


def test_starts_on_user_screen_with_default_state(shell):
    assert shell.current_screen == "user"
    assert shell.global_state.id == "user-001"
    assert shell.global_state.safety_level == SafetyLevel.GREEN
    assert shell.alerts == []
    assert shell.status_line() == "System Status: GREEN | Sensors Active"


def test_screen_toggle(shell):
    shell.show_admin()
    assert shell.current_screen == "admin"
    shell.show_user()
    assert shell.current_screen == "user"
    with pytest.raises(ValueError):
        shell.show("settings")


def test_mirrors_monitor_state_and_alerts(shell, bus, clock):
    monitor = SafetyMonitor(bus, clock=clock)
    monitor.ingest_sound(95)

    assert shell.global_state.id == monitor.user_id
    assert shell.global_state.safety_level == SafetyLevel.RED
    assert len(shell.alerts) == 1
    assert shell.status_line() == "System Status: RED | Sensors Active"
    monitor.close()


def test_login_goes_through_admin(shell):
    assert shell.login("wrong") is False
    assert shell.is_authenticated is False
    assert shell.admin.error == "Invalid credentials."
    assert shell.login("1234567") is True
    assert shell.is_authenticated is True


def test_malformed_state_keeps_previous_mirror(shell, bus, collection):
    collection.update_one({"_id": USER_STATE_KEY}, {"$set": {"value": "nope"}}, upsert=True)
    shell._on_store_change(USER_STATE_KEY)
    assert shell.global_state.id == "user-001"


def test_close_stops_mirroring(bus, clock):
    shell = AppShell(bus, AdminConsole(bus))
    shell.close()
    monitor = SafetyMonitor(bus, clock=clock)
    monitor.panic()
    assert shell.alerts == []
    monitor.close()
