class StampedeError(Exception):
    """Base error for the stampede guard service."""


class StoredValueError(StampedeError):
    """A stored blob is not valid JSON or does not match its schema."""

    def __init__(self, key, reason):
        super().__init__(f"Malformed value under '{key}': {reason}")
        self.key = key
        self.reason = reason


class WriteConflict(StampedeError):
    """A versioned write found a different version than expected."""

    def __init__(self, key, expected, actual):
        super().__init__(f"Version conflict on '{key}': expected {expected}, found {actual}")
        self.key = key
        self.expected = expected
        self.actual = actual


class InvalidThreshold(StampedeError, ValueError):
    pass


class ContactNotFound(StampedeError, KeyError):
    def __init__(self, contact_id):
        super().__init__(contact_id)
        self.contact_id = contact_id

    def __str__(self):
        return f"Contact {self.contact_id} not found"
