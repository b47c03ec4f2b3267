from __future__ import annotations


class ShrinkRulesError(Exception):
    """Base class for every recoverable failure in shrinkrules."""


class StorageCorrupt(ShrinkRulesError):
    pass


class Unreachable(ShrinkRulesError):
    """The remote store could not be contacted at all."""


class HttpError(ShrinkRulesError):
    def __init__(self, status: int, detail: str | None = None) -> None:
        self.status = status
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"remote returned {status}{suffix}")


class Unauthorized(HttpError):
    def __init__(self, detail: str | None = "unauthorized") -> None:
        super().__init__(401, detail)


class InvalidCredential(ShrinkRulesError):
    pass


class NotAuthenticated(ShrinkRulesError):
    pass


class ValidationError(ShrinkRulesError):
    pass


class NothingToAdd(ValidationError):
    pass


class NothingToSave(ValidationError):
    pass


class PayloadTooLarge(ShrinkRulesError):
    pass


class MalformedBody(ShrinkRulesError):
    pass
