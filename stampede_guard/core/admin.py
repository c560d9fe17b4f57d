import logging
import threading
from typing import Optional

from stampede_guard.config import (
    ADMIN_PASSWORDS,
    ADMIN_SETTINGS_KEY,
    ALERTS_KEY,
    PANIC_THRESHOLD_KEY,
    PANIC_THRESHOLD_RANGE,
    SHAKE_THRESHOLD_KEY,
    SHAKE_THRESHOLD_RANGE,
    USER_STATE_KEY,
)
from stampede_guard.models.schemas import AdminSettings, Alert, EmergencyContact, UserState
from .exceptions import ContactNotFound, InvalidThreshold

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials."


def check_password(password: str) -> bool:
    return password in ADMIN_PASSWORDS


def _validate_threshold(name, value, bounds):
    low, high = bounds
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
        raise InvalidThreshold(f"{name} must be an integer between {low} and {high}, got {value!r}")
    return value


class AdminConsole:
    """
    Admin-side view: login gate, settings and contact management, monitoring.

    Every settings change is persisted immediately, together with the two
    duplicated threshold scalars the user view reads.
    """

    def __init__(self, bus):
        self.bus = bus
        self._lock = threading.RLock()
        self.authenticated = False
        self.error = ""
        self.settings = bus.read_or_default(ADMIN_SETTINGS_KEY, AdminSettings, AdminSettings())
        self._persist()

    # ---------- auth ----------
    def login(self, password: str) -> bool:
        if check_password(password):
            self.authenticated = True
            self.error = ""
            logger.info("[✓] Admin authenticated")
        else:
            self.error = INVALID_CREDENTIALS
            logger.warning("[✗] Admin login rejected")
        return self.authenticated

    def logout(self):
        self.authenticated = False
        self.error = ""

    # ---------- persistence ----------
    def _persist(self):
        self.bus.put(ADMIN_SETTINGS_KEY, self.settings)
        self.bus.put(PANIC_THRESHOLD_KEY, self.settings.panic_threshold)
        self.bus.put(SHAKE_THRESHOLD_KEY, self.settings.shake_threshold)

    def _update(self, **changes) -> AdminSettings:
        with self._lock:
            self.settings = self.settings.model_copy(update=changes)
            self._persist()
            return self.settings

    # ---------- thresholds & flags ----------
    def set_panic_threshold(self, value: int) -> AdminSettings:
        _validate_threshold("panic_threshold", value, PANIC_THRESHOLD_RANGE)
        logger.info(f"Panic threshold set to {value}%")
        return self._update(panic_threshold=value)

    def set_shake_threshold(self, value: int) -> AdminSettings:
        _validate_threshold("shake_threshold", value, SHAKE_THRESHOLD_RANGE)
        logger.info(f"Shake threshold set to {value}")
        return self._update(shake_threshold=value)

    def set_flags(self, auto_call: Optional[bool] = None, auto_sms: Optional[bool] = None) -> AdminSettings:
        changes = {}
        if auto_call is not None:
            changes["auto_call"] = auto_call
        if auto_sms is not None:
            changes["auto_sms"] = auto_sms
        return self._update(**changes)

    # ---------- contacts ----------
    def _find_contact(self, contact_id: str) -> EmergencyContact:
        for contact in self.settings.contacts:
            if contact.id == contact_id:
                return contact
        raise ContactNotFound(contact_id)

    def save_contact(self, name: str, phone: str, contact_id: Optional[str] = None) -> Optional[EmergencyContact]:
        """
        Add a contact, or edit the one with contact_id in place.

        Nothing is saved (None returned) unless both name and phone are given.
        """
        if not name or not phone:
            return None

        with self._lock:
            if contact_id:
                contact = self._find_contact(contact_id).model_copy(update={"name": name, "phone": phone})
                contacts = [contact if c.id == contact_id else c for c in self.settings.contacts]
            else:
                contact = EmergencyContact(name=name, phone=phone)
                contacts = [*self.settings.contacts, contact]
            self._update(contacts=contacts)
        logger.info(f"[✓] Saved contact {contact.id} ({contact.name})")
        return contact

    def remove_contact(self, contact_id: str) -> AdminSettings:
        with self._lock:
            self._find_contact(contact_id)
            return self._update(contacts=[c for c in self.settings.contacts if c.id != contact_id])

    def toggle_contact(self, contact_id: str) -> EmergencyContact:
        with self._lock:
            contact = self._find_contact(contact_id)
            toggled = contact.model_copy(update={"active": not contact.active})
            self._update(contacts=[toggled if c.id == contact_id else c for c in self.settings.contacts])
            return toggled

    # ---------- monitoring ----------
    def user_state(self) -> Optional[UserState]:
        return self.bus.read_or_default(USER_STATE_KEY, UserState)

    def alerts(self) -> list[Alert]:
        return self.bus.read_or_default(ALERTS_KEY, list[Alert], [])
