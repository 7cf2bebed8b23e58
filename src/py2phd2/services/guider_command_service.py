"""
Base service class for PHD2 parameter operations.

Provides the validate-then-call helpers shared by the equipment, settings
and star image services. Subclasses implement the PHD2 method wrappers.
"""

import logging
from typing import Any, Callable, Iterable, Optional

from py2phd2.core.errors import ErrorCodes, ProtocolError, ValidationError

_NO_DEFAULT = object()


class GuiderCommandService:
    """
    Base class for PHD2 services.

    Wraps a PHD2Client and turns raw call results into typed values.
    """

    def __init__(self, client):
        """
        Initialize command service.

        Args:
            client: Connected (or connectable) PHD2Client
        """
        self.client = client
        self.logger = logging.getLogger(self.__class__.__name__)

    def _query(
        self,
        method: str,
        convert: Callable[[Any], Any],
        default: Any = _NO_DEFAULT,
        params: Any = None
    ) -> Any:
        """
        Call a getter and convert its result.

        Args:
            method: PHD2 method name
            convert: Conversion applied to a non-null result (int, float, ...)
            default: Value returned when PHD2 answers null. Without one, a
                null answer raises ProtocolError
            params: Optional call parameters

        Raises:
            ProtocolError: On a null result without default, or an
                unconvertible one
        """
        self.client.check_connected()
        result = self.client.call(method, params)

        if result is None:
            if default is _NO_DEFAULT:
                raise ProtocolError(f"{method} returned no value", method=method)
            self.logger.debug(f"{method} returned null, using default {default!r}")
            return default

        try:
            return convert(result)
        except (TypeError, ValueError) as e:
            raise ProtocolError(
                f"Unexpected result from {method}: {result!r}",
                method=method,
                error_code=ErrorCodes.INVALID_RESPONSE,
                cause=e
            )

    def _send(self, method: str, params: Any = None) -> Any:
        """Call a setter or action method."""
        self.client.check_connected()
        self.logger.debug(f"{method} {params!r}")
        return self.client.call(method, params)

    @staticmethod
    def _require_choice(value: Any, choices: Iterable[Any], field_name: str) -> None:
        choices = list(choices)
        if value not in choices:
            valid = ", ".join(str(c) for c in choices)
            raise ValidationError(
                f"Invalid {field_name}: {value}. Valid values are: {valid}",
                field_name=field_name
            )

    @staticmethod
    def _require_type(value: Any, expected, field_name: str) -> None:
        # bool is an int subclass; reject it where a number is expected
        if isinstance(value, bool) and bool not in _as_tuple(expected):
            raise ValidationError(f"{field_name} must not be a boolean", field_name=field_name)
        if not isinstance(value, expected):
            raise ValidationError(
                f"{field_name} has wrong type {type(value).__name__}",
                field_name=field_name
            )

    @classmethod
    def _require_range(cls, value: float, field_name: str,
                       minimum: Optional[float] = None,
                       maximum: Optional[float] = None) -> None:
        cls._require_type(value, (int, float), field_name)
        if minimum is not None and value < minimum:
            raise ValidationError(f"{field_name} must be >= {minimum}, got {value}",
                                  field_name=field_name, error_code=ErrorCodes.OUT_OF_RANGE)
        if maximum is not None and value > maximum:
            raise ValidationError(f"{field_name} must be <= {maximum}, got {value}",
                                  field_name=field_name, error_code=ErrorCodes.OUT_OF_RANGE)


def _as_tuple(expected) -> tuple:
    return expected if isinstance(expected, tuple) else (expected,)
