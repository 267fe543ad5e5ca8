from typing import Generic, TypeVar, Optional, Any, Dict, Union
from http import HTTPStatus

from pydantic import BaseModel

from utils.errors import SpectraDataError, SpectraFormatError, SpectraNotFoundError

T = TypeVar('T')  # Generic type variable


def status_for(error: Exception) -> HTTPStatus:
    """
    HTTP status reported for a failed conversion.

    Args:
        error (Exception): The exception raised by the conversion

    Returns:
        HTTPStatus: 415 for unreadable formats, 422 for unparseable sheets,
            404 for missing paths, 400 for other I/O failures, 500 otherwise
    """
    if isinstance(error, SpectraFormatError):
        return HTTPStatus.UNSUPPORTED_MEDIA_TYPE
    if isinstance(error, SpectraDataError):
        return HTTPStatus.UNPROCESSABLE_ENTITY
    if isinstance(error, SpectraNotFoundError):
        return HTTPStatus.NOT_FOUND
    if isinstance(error, OSError):
        return HTTPStatus.BAD_REQUEST
    return HTTPStatus.INTERNAL_SERVER_ERROR


class Result(Generic[T]):
    """
    A generic result class that represents the outcome of a conversion request.

    Adapters return either successful results with data or failed results
    with the message to show to the user, without raising.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (only present when success is True)
        error (Optional[str]): Error message (only present when success is False)
        status_code (HTTPStatus): HTTP status code (default: 200 for success, 400 for failure)
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None
    ):
        self.success = success
        self.data = data
        self.error = error

        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        else:
            self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(cls, data: T, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK) -> "Result[T]":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def from_error(cls, error: Exception, message: str = "Failed to process data") -> "Result[T]":
        """
        Create a failed Result describing ``error``.

        Args:
            error (Exception): The exception raised by the conversion
            message (str, optional): Summary placed before the exception's message

        Returns:
            Result[T]: A failed Result whose status code reflects the kind of error
        """
        return cls(success=False, error=f"{message}: {str(error)}", status_code=status_for(error))

    @classmethod
    def invalid_input(cls, error: str = "Invalid input data") -> "Result[T]":
        return cls(success=False, error=error, status_code=HTTPStatus.BAD_REQUEST)

    def is_success(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Result to a dictionary suitable for API responses.

        Returns:
            Dict[str, Any]: Dictionary containing status, status_code, data/error
        """
        response = {
            "success": self.success,
            "status_code": self.status_code.value,
            "status": self.status_code.phrase
        }

        if self.is_success():
            data = self.data
            response["data"] = data.model_dump() if isinstance(data, BaseModel) else data
        else:
            response["error"] = self.error

        return response

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            # Truncate long data representations
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}): {self.error}"

    def __repr__(self) -> str:
        return f"Result(success={self.success}, status_code={self.status_code!r}, data={self.data!r}, error={self.error!r})"
