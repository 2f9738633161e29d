"""Custom exception hierarchy for parish_calendar.

The occurrence expander never raises: malformed event definitions degrade to
defaults or are skipped. These exceptions belong to the boundary code around
it (storage, remote sync, language model, HTTP request parsing) so callers
can tell failure kinds apart and map them to HTTP status codes.
"""


class ParishCalendarError(Exception):
    """Base exception for all parish_calendar errors."""


class ConfigError(ParishCalendarError, ValueError):
    """Configuration file or environment value could not be used.

    Raised when:
    - The config file exists but is not valid YAML
    - Its top level is not a mapping
    """


class StoreError(ParishCalendarError):
    """Record store could not be written.

    Raised when the JSON store file cannot be persisted. Read failures are
    logged and treated as an empty store instead.
    """


class LanguageModelError(ParishCalendarError):
    """Hosted language model call failed.

    Raised when:
    - No API key is configured
    - The HTTP request fails or returns a non-2xx status
    - The response carries no text, or JSON output cannot be decoded
    """


class QuotaExceededError(LanguageModelError):
    """Language model refused the request because the quota is exhausted.

    Corresponds to HTTP 429 / ``RESOURCE_EXHAUSTED``. Callers cache their
    fallback for the day when they see this.
    """


class RequestValidationError(ParishCalendarError):
    """HTTP request parameters are invalid.

    Raised when:
    - A date query parameter is missing or malformed
    - A calendar view name is unknown
    - A JSON body is not an object

    Should result in HTTP 400 Bad Request response.
    """
