class NoPhishError(Exception):
    """Base class for errors raised by the reputation engine"""


class ReputationServiceError(NoPhishError):
    """An external reputation service could not give an answer"""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class NetworkError(ReputationServiceError):
    """Service unreachable, timed out or answered with a non-2xx status"""


class ParseError(ReputationServiceError):
    """Service answered but the body did not have the expected shape"""


class StorageError(NoPhishError):
    """The durable store rejected or could not complete an operation"""


class ImportFailure(NoPhishError):
    """A feed import run was abandoned; the store is left as it was"""


class InvalidSettingError(ValueError):
    """Unknown guild setting or a value outside its allowed range"""


class HistoryRangeError(ValueError):
    """History window outside the allowed number of days"""
