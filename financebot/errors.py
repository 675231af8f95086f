"""Error taxonomy shared by the chat flow and the services it drives."""


class FinanceBotError(Exception):
    """Base class for every error raised by the chat transaction flow."""


class InputValidationError(FinanceBotError):
    """User input could not be interpreted; the user is asked again."""


class AuthError(FinanceBotError):
    """Credential challenge failed (unknown email, bad password, device conflict)."""


class ExternalServiceError(FinanceBotError):
    """Telegram or blob storage did not answer as expected."""


class PersistenceError(FinanceBotError):
    """A database read or write failed."""
