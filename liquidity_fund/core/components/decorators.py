from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from liquidity_fund.core.errors import FundError


def operation[T](name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Turn a component method into an authorized, atomic public operation.

    The caller's roles are checked against the policy for
    ``"<Component>.<name>"`` before anything runs; the body then executes inside
    ``self.tx.atomic`` so any exception restores every participant. Errors
    escaping an operation carry the qualified name of the innermost one.
    """

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @wraps(fn)
        def wrapper(self: Any, *args: Any, sender: str, **kwargs: Any) -> T:
            qualified = f"{self.policy_name}.{name}"
            self.identity.require(qualified, sender, self)
            try:
                with self.tx.atomic(qualified):
                    result = fn(self, *args, sender=sender, **kwargs)
            except FundError as exc:
                if exc.operation is None:
                    exc.operation = qualified
                raise
            self.logger.info(f"{qualified} by {sender}")
            return result

        wrapper.operation_name = name  # type: ignore[attr-defined]
        return wrapper

    return decorator
