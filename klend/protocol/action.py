"""User action tags shared by reserve and obligation simulations."""

from enum import Enum

from klend.errors import UnsupportedActionError


class ActionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    DEPOSIT_AND_BORROW = "depositAndBorrow"
    REPAY_AND_WITHDRAW = "repayAndWithdraw"
    MINT = "mint"
    REDEEM = "redeem"

    @classmethod
    def parse(cls, value: "ActionType | str") -> "ActionType":
        """Resolve a tag, accepting enum members, values and member names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise UnsupportedActionError(f"Unknown action type {value!r}") from None
