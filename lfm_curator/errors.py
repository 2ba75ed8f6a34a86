"""
Error types - Classified exceptions raised by lfm_curator

Every failure that can reach a caller is an LfmError carrying an ErrorType.
Cache-layer problems never show up here: they are logged and treated as a
cache miss.
"""
from enum import Enum
from typing import Optional


class ErrorType(Enum):
    """Broad failure classes used for reporting and retry decisions"""
    API = "api"
    VALIDATION = "validation"
    DATA = "data"
    CONFIGURATION = "configuration"
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


class LfmError(Exception):
    """Base exception for all classified failures"""

    error_type = ErrorType.UNKNOWN

    def __init__(self, message: str, technical_details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.technical_details = technical_details

    @property
    def is_retryable(self) -> bool:
        """True for transient upstream failures"""
        return self.error_type in (ErrorType.API, ErrorType.NETWORK, ErrorType.RATE_LIMIT)

    @property
    def requires_user_action(self) -> bool:
        """True when the user has to fix their input or configuration"""
        return self.error_type in (
            ErrorType.CONFIGURATION,
            ErrorType.VALIDATION,
            ErrorType.AUTHENTICATION,
        )

    def to_dict(self) -> dict:
        data = {'type': self.error_type.value, 'message': self.message}
        if self.technical_details:
            data['details'] = self.technical_details
        return data


class ValidationError(LfmError, ValueError):
    """Raised for malformed or conflicting request parameters"""
    error_type = ErrorType.VALIDATION


class DataError(LfmError):
    """Raised when an upstream payload is empty or cannot be parsed"""
    error_type = ErrorType.DATA


class ConfigurationError(LfmError):
    """Raised for missing or invalid configuration"""
    error_type = ErrorType.CONFIGURATION


class AuthenticationError(LfmError):
    """Raised when the API key is rejected"""
    error_type = ErrorType.AUTHENTICATION


class ApiError(LfmError):
    """Raised when Last.FM answers with an error payload"""
    error_type = ErrorType.API

    def __init__(self, message: str, technical_details: Optional[str] = None,
                 code: Optional[int] = None):
        super().__init__(message, technical_details)
        self.code = code


class RateLimitError(ApiError):
    """Raised when the rate limit is exceeded (Last.FM error 29 or HTTP 429)"""
    error_type = ErrorType.RATE_LIMIT


class NetworkError(LfmError):
    """Raised when the connection fails or the server keeps returning 5xx"""
    error_type = ErrorType.NETWORK


class UnknownError(LfmError):
    """Catch-all for unexpected failures surfaced at the command boundary"""
    error_type = ErrorType.UNKNOWN
