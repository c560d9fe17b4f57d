from concurrent.futures import ThreadPoolExecutor

import pytest

from stampede_guard.config import ADMIN_SETTINGS_KEY, PANIC_THRESHOLD_KEY, SHAKE_THRESHOLD_KEY
from stampede_guard.core.admin import INVALID_CREDENTIALS, AdminConsole
from stampede_guard.core.exceptions import ContactNotFound, InvalidThreshold
from stampede_guard.core.monitor import SafetyMonitor
from stampede_guard.models.schemas import AdminSettings


@pytest.fixture
def admin(bus):
    return AdminConsole(bus)


class TestLogin:
    @pytest.mark.parametrize("password", ["1234567", "Demon@Slayer"])
    def test_accepted_passwords(self, admin, password):
        assert admin.login(password) is True
        assert admin.authenticated is True
        assert admin.error == ""

    def test_wrong_password(self, admin):
        assert admin.login("wrong") is False
        assert admin.authenticated is False
        assert admin.error == INVALID_CREDENTIALS

    def test_logout(self, admin):
        admin.login("1234567")
        admin.logout()
        assert admin.authenticated is False


class TestSettings:
    def test_defaults_are_persisted_on_start(self, admin, bus):
        settings = bus.load(ADMIN_SETTINGS_KEY, AdminSettings)
        assert settings == AdminSettings()
        assert settings.panic_threshold == 85
        assert settings.shake_threshold == 15
        assert settings.auto_call is True and settings.auto_sms is True
        assert bus.get(PANIC_THRESHOLD_KEY) == 85
        assert bus.get(SHAKE_THRESHOLD_KEY) == 15

    def test_threshold_changes_update_scalars(self, admin, bus):
        admin.set_panic_threshold(70)
        admin.set_shake_threshold(20)

        assert bus.get(PANIC_THRESHOLD_KEY) == 70
        assert bus.get(SHAKE_THRESHOLD_KEY) == 20
        assert bus.load(ADMIN_SETTINGS_KEY, AdminSettings).panic_threshold == 70

    @pytest.mark.parametrize("value", [9, 101, 50.5, "80", True])
    def test_panic_threshold_range(self, admin, value):
        with pytest.raises(InvalidThreshold):
            admin.set_panic_threshold(value)
        assert admin.settings.panic_threshold == 85

    @pytest.mark.parametrize("value", [4, 31])
    def test_shake_threshold_range(self, admin, value):
        with pytest.raises(InvalidThreshold):
            admin.set_shake_threshold(value)

    @pytest.mark.parametrize("value", [10, 100])
    def test_panic_threshold_bounds_are_inclusive(self, admin, value):
        assert admin.set_panic_threshold(value).panic_threshold == value

    def test_flags_are_stored(self, admin, bus):
        admin.set_flags(auto_call=False)
        settings = bus.load(ADMIN_SETTINGS_KEY, AdminSettings)
        assert settings.auto_call is False
        assert settings.auto_sms is True

    def test_settings_survive_restart(self, admin, bus):
        admin.save_contact("Ana", "555-0100")
        admin.set_panic_threshold(60)

        restarted = AdminConsole(bus)

        assert restarted.settings == admin.settings

    def test_malformed_settings_fall_back_to_defaults(self, bus, collection):
        collection.insert_one({"_id": ADMIN_SETTINGS_KEY, "value": "{oops", "version": 1})
        assert AdminConsole(bus).settings == AdminSettings()

    def test_threshold_change_reaches_monitor(self, admin, bus):
        monitor = SafetyMonitor(bus)
        admin.set_shake_threshold(25)
        assert monitor.shake_threshold == 25
        monitor.close()


class TestContacts:
    def test_add_contact(self, admin):
        before = len(admin.settings.contacts)

        contact = admin.save_contact("Ana", "555-0100")

        assert len(admin.settings.contacts) == before + 1
        assert contact.active is True
        assert contact.name == "Ana"
        assert contact.phone == "555-0100"

    @pytest.mark.parametrize("name, phone", [("", "555-0100"), ("Ana", ""), ("", "")])
    def test_name_and_phone_required(self, admin, name, phone):
        assert admin.save_contact(name, phone) is None
        assert admin.settings.contacts == []

    def test_edit_in_place(self, admin):
        first = admin.save_contact("Ana", "555-0100")
        second = admin.save_contact("Bo", "555-0101")

        edited = admin.save_contact("Ana Maria", "555-0199", contact_id=first.id)

        assert edited.id == first.id
        assert [c.name for c in admin.settings.contacts] == ["Ana Maria", "Bo"]
        assert admin.settings.contacts[1] == second

    def test_edit_unknown_contact(self, admin):
        with pytest.raises(ContactNotFound):
            admin.save_contact("Ana", "555-0100", contact_id="missing")

    def test_remove(self, admin, bus):
        contact = admin.save_contact("Ana", "555-0100")
        admin.remove_contact(contact.id)
        assert admin.settings.contacts == []
        assert bus.load(ADMIN_SETTINGS_KEY, AdminSettings).contacts == []

    def test_remove_unknown_contact(self, admin):
        with pytest.raises(ContactNotFound):
            admin.remove_contact("missing")

    def test_toggle(self, admin):
        contact = admin.save_contact("Ana", "555-0100")
        assert admin.toggle_contact(contact.id).active is False
        assert admin.toggle_contact(contact.id).active is True

    def test_concurrent_adds_are_all_kept(self, admin, bus):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: admin.save_contact(f"Contact {i}", f"555-{i:04d}"), range(40)))

        assert len(admin.settings.contacts) == 40
        assert len(bus.load(ADMIN_SETTINGS_KEY, AdminSettings).contacts) == 40


class TestMonitoring:
    def test_reads_user_state_and_alerts(self, admin, bus):
        assert admin.alerts() == []
        monitor = SafetyMonitor(bus)
        monitor.panic()

        assert admin.user_state().id == monitor.user_id
        assert admin.alerts()[0].reason == "Manual Panic Button"
        monitor.close()
