"""Error taxonomy shared by the fund, the position manager and the router.

Every error aborts the whole operation that raised it. ``operation`` is filled
in by the ``operation`` decorator with the qualified name of the outermost
public call (``"Fund.join_pool"``) unless the raiser set it already.
"""

from __future__ import annotations


class FundError(Exception):
    def __init__(self, message: str = "", *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    @property
    def kind(self) -> str:
        return self.__class__.__name__

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class AuthorizationError(FundError):
    pass


class AlreadyBoundError(FundError):
    pass


class AlreadyConfiguredError(FundError):
    pass


class ValidationError(FundError):
    pass


class InvalidRatioError(ValidationError):
    pass


class CapExceededError(ValidationError):
    pass


class InvalidAmountError(ValidationError):
    pass


class InsufficientBalanceError(ValidationError):
    pass


class NonZeroBalanceError(ValidationError):
    pass


class NotWhitelistedError(ValidationError):
    pass


class RoutingError(FundError):
    pass


class RouteNotSetError(RoutingError):
    pass


class MalformedRouteError(RoutingError):
    pass


class PoolNotFoundError(RoutingError):
    pass


class SlippageError(FundError):
    pass


class InsufficientLiquidityError(FundError):
    pass


class CustodyError(FundError):
    pass


class ArithmeticOverflowError(FundError, ArithmeticError):
    pass
