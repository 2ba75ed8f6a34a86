"""
Last.FM API Client - Raw access to the Last.FM web service

Returns decoded JSON and raises classified errors. Caching and parsing live in
cached_client.py.
"""
import logging
from typing import Any, Dict, Optional

import requests

from lfm_curator.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    DataError,
    LfmError,
    NetworkError,
    RateLimitError,
)
from lfm_curator.logging_utils import redact
from lfm_curator.rate_limiter import RateLimiter
from lfm_curator.retry_helper import retry_with_backoff

logger = logging.getLogger(__name__)

# Last.FM error codes (https://www.last.fm/api/errorcodes)
_AUTH_ERROR_CODES = {4, 9, 10, 14, 26}
_DATA_ERROR_CODES = {6, 7}
_RATE_LIMIT_CODE = 29
_TRANSIENT_CODES = {8, 11, 16}


def _is_transient(error: Exception) -> bool:
    if isinstance(error, (NetworkError, RateLimitError)):
        return True
    return isinstance(error, ApiError) and error.code in _TRANSIENT_CODES


class LastFMClient:
    """Client for interacting with Last.FM API"""

    BASE_URL = "https://ws.audioscrobbler.com/2.0/"

    def __init__(
        self,
        api_key: str,
        calls_per_second: float = 5.0,
        timeout: float = 10.0,
        max_retries: int = 4,
        initial_delay: float = 1.0,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """
        Initialize Last.FM client

        Args:
            api_key: Last.FM API key
            calls_per_second: Request ceiling (Last.FM ToS allows 5/s)
            timeout: Per-request timeout in seconds
            max_retries: Retries for 5xx, timeouts and rate-limit answers
            initial_delay: First backoff delay; doubles on each retry
            session: Optional requests session (injectable for tests)
            rate_limiter: Optional limiter (injectable for tests)
        """
        if not api_key or not str(api_key).strip():
            raise ConfigurationError(
                "Last.FM API key is not set",
                technical_details="Set lastfm.api_key in config.yaml or LASTFM_API_KEY",
            )

        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter(calls_per_second=calls_per_second)
        self._send = retry_with_backoff(
            max_retries=max_retries,
            initial_delay=initial_delay,
            exceptions=(LfmError,),
            should_retry=_is_transient,
        )(self._send_once)

        logger.debug(f"Initialized Last.FM client ({calls_per_second} calls/sec)")

    def request(self, method: str, **params: Any) -> Dict[str, Any]:
        """
        Call a Last.FM API method

        Args:
            method: API method name (e.g. user.getTopTracks)
            **params: Method parameters; None values are dropped

        Returns:
            Decoded JSON response

        Raises:
            NetworkError: connection failure or repeated 5xx after retries
            RateLimitError: still rate limited after retries
            AuthenticationError: API key rejected
            DataError: unknown artist/user or undecodable body
            ApiError: any other Last.FM error payload
        """
        request_params = {
            'method': method,
            'api_key': self.api_key,
            'format': 'json',
            **{k: v for k, v in params.items() if v is not None},
        }
        logger.debug(f"Last.FM request: {redact(request_params, keys=['api_key'])}")
        return self._send(request_params)

    def _send_once(self, request_params: Dict[str, Any]) -> Dict[str, Any]:
        method = request_params.get('method')
        self.rate_limiter.wait()

        try:
            response = self.session.get(self.BASE_URL, params=request_params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Last.FM request timed out ({method})", technical_details=str(e))
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Last.FM request failed ({method})", technical_details=str(e))

        status = response.status_code
        if status == 429:
            raise RateLimitError(f"Last.FM rate limit exceeded ({method})", code=_RATE_LIMIT_CODE)
        if status >= 500:
            raise NetworkError(f"Last.FM returned {status} ({method})")

        try:
            data = response.json()
        except ValueError as e:
            if status >= 400:
                raise ApiError(f"Last.FM returned HTTP {status} ({method})", technical_details=str(e))
            raise DataError(f"Last.FM returned invalid JSON ({method})", technical_details=str(e))

        if isinstance(data, dict) and 'error' in data:
            raise self._api_error(method, data)
        if status >= 400:
            raise ApiError(f"Last.FM returned HTTP {status} ({method})")
        if not isinstance(data, dict):
            raise DataError(f"Unexpected Last.FM response type for {method}: {type(data).__name__}")
        return data

    @staticmethod
    def _api_error(method: str, data: Dict[str, Any]) -> LfmError:
        """Map a Last.FM error payload to the matching exception"""
        try:
            code = int(data.get('error'))
        except (TypeError, ValueError):
            code = None
        message = data.get('message') or 'Unknown error'
        text = f"Last.FM error {code} for {method}: {message}"

        if code == _RATE_LIMIT_CODE:
            return RateLimitError(text, code=code)
        if code in _AUTH_ERROR_CODES:
            return AuthenticationError(text)
        if code in _DATA_ERROR_CODES:
            return DataError(text)
        return ApiError(text, code=code)

    def get_stats(self) -> dict:
        return self.rate_limiter.get_stats()

    def close(self) -> None:
        self.session.close()
