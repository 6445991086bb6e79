from liquidity_fund.core.components.BaseComponent import BaseComponent
from liquidity_fund.core.components.decorators import operation

__all__ = ["BaseComponent", "operation"]
