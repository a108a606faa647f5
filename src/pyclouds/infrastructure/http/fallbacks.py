"""Turn "not found" failures into ordinary return values."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pyclouds.domain.base.exceptions import ResourceNotFoundError
from pyclouds.infrastructure.http.errors import HttpResponseError


def _causes(error: Optional[BaseException]):
    seen = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        yield error
        error = error.__cause__ or error.__context__


def is_not_found(error: BaseException) -> bool:
    """True for a ``ResourceNotFoundError`` or a 404 response anywhere in the cause chain."""
    for cause in _causes(error):
        if isinstance(cause, ResourceNotFoundError):
            return True
        if isinstance(cause, HttpResponseError) and cause.status_code == 404:
            return True
    return False


class Fallback(ABC):
    @abstractmethod
    def create(self, error: BaseException) -> Any:
        """Return a value for ``error`` or re-raise it."""


class _ValueOnNotFound(Fallback):
    value: Any = None

    def create(self, error: BaseException) -> Any:
        if is_not_found(error):
            return self.value
        raise error

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NullOnNotFound(_ValueOnNotFound):
    value = None


class FalseOnNotFound(_ValueOnNotFound):
    value = False


class TrueOnNotFound(_ValueOnNotFound):
    value = True


class VoidOnNotFound(_ValueOnNotFound):
    value = None


class EmptyListOnNotFound(_ValueOnNotFound):
    def create(self, error: BaseException) -> Any:
        if is_not_found(error):
            return []
        raise error


class Fallbacks:
    null_on_not_found = NullOnNotFound()
    false_on_not_found = FalseOnNotFound()
    true_on_not_found = TrueOnNotFound()
    void_on_not_found = VoidOnNotFound()
    empty_list_on_not_found = EmptyListOnNotFound()
