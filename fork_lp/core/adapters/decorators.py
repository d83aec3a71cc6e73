from __future__ import annotations

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeAlias, TypeVar

from fork_lp.core.errors import ProvisioningError

T = TypeVar("T")

StepResult: TypeAlias = tuple[bool, T | ProvisioningError]


def step_result(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap an adapter step to return ``(True, result)`` or ``(False, error)``.

    Only ``ProvisioningError`` is turned into a failed result; anything else is
    a defect and propagates. Works for both sync and async methods.
    """

    if inspect.iscoroutinefunction(fn):

        @wraps(fn)
        async def async_wrapper(self: Any, *args: Any, **kwargs: Any) -> StepResult:
            try:
                return (True, await fn(self, *args, **kwargs))
            except ProvisioningError as exc:
                self.logger.error(f"{fn.__name__} failed: {exc}")
                return (False, exc)

        return async_wrapper

    @wraps(fn)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> StepResult:
        try:
            return (True, fn(self, *args, **kwargs))
        except ProvisioningError as exc:
            self.logger.error(f"{fn.__name__} failed: {exc}")
            return (False, exc)

    return wrapper
