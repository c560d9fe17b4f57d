import logging

from stampede_guard.config import ALERTS_KEY, USER_STATE_KEY
from stampede_guard.models.schemas import Alert, SafetyLevel, UserState
from .monitor import now_ms

logger = logging.getLogger(__name__)

SCREENS = ("user", "admin")


def default_user_state() -> UserState:
    return UserState(id="user-001", safety_level=SafetyLevel.GREEN, last_update=now_ms())


class AppShell:
    """Top-level shell: screen toggle plus a mirror of the user state and alert list."""

    def __init__(self, bus, admin):
        self.bus = bus
        self.admin = admin
        self.current_screen = "user"
        self.global_state = bus.read_or_default(USER_STATE_KEY, UserState) or default_user_state()
        self.alerts = bus.read_or_default(ALERTS_KEY, list[Alert], [])
        self._subscription = bus.subscribe(self._on_store_change, keys=[USER_STATE_KEY, ALERTS_KEY])

    def _on_store_change(self, key):
        if key == USER_STATE_KEY:
            state = self.bus.read_or_default(USER_STATE_KEY, UserState)
            if state is not None:
                self.global_state = state
        elif key == ALERTS_KEY:
            self.alerts = self.bus.read_or_default(ALERTS_KEY, list[Alert], self.alerts)

    def show(self, screen: str):
        if screen not in SCREENS:
            raise ValueError(f"Unknown screen {screen!r}")
        self.current_screen = screen

    def show_user(self):
        self.show("user")

    def show_admin(self):
        self.show("admin")

    @property
    def is_authenticated(self) -> bool:
        return self.admin.authenticated

    def login(self, password: str) -> bool:
        return self.admin.login(password)

    def status_line(self) -> str:
        return f"System Status: {self.global_state.safety_level.value} | Sensors Active"

    def close(self):
        self.bus.unsubscribe(self._subscription)
