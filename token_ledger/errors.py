"""
Ledger Error Module

Failure taxonomy for the token ledger. Every failure is detected before any
state is touched, so catching one of these means the ledger is unchanged.
"""

from typing import Any, Dict, Hashable


class LedgerError(ValueError):
    """Base class for all ledger failures"""

    code: str = "LedgerError"

    def details(self) -> Dict[str, Any]:
        """Diagnostic values carried by this error"""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses and logs"""
        result: Dict[str, Any] = {"error": self.code, "message": str(self)}
        for key, value in self.details().items():
            # Amounts can exceed the JSON-safe integer range
            result[key] = str(value) if isinstance(value, int) else value
        return result


class InvalidAccountError(LedgerError):
    """Null identifier used where a real account is required"""

    code = "InvalidAccount"
    role = "account"

    def __init__(self, account: Hashable = None):
        super().__init__(f"Invalid {self.role}: {account!r}")
        self.account = account

    def details(self) -> Dict[str, Any]:
        return {"account": self.account}


class InvalidAccount(InvalidAccountError):
    code = "InvalidAccount"
    role = "account"


class InvalidSender(InvalidAccountError):
    code = "InvalidSender"
    role = "sender"


class InvalidReceiver(InvalidAccountError):
    code = "InvalidReceiver"
    role = "receiver"


class InvalidOwner(InvalidAccountError):
    code = "InvalidOwner"
    role = "owner"


class InvalidSpender(InvalidAccountError):
    code = "InvalidSpender"
    role = "spender"


class InvalidAmount(LedgerError):
    """Amount is not an unsigned 256-bit integer"""

    code = "InvalidAmount"

    def __init__(self, amount: Any):
        super().__init__(f"Invalid amount: {amount!r}")
        self.amount = amount

    def details(self) -> Dict[str, Any]:
        return {"amount": repr(self.amount)}


class InsufficientBalance(LedgerError):
    """Transfer or burn source lacks funds"""

    code = "InsufficientBalance"

    def __init__(self, account: Hashable, available: int, required: int):
        super().__init__(
            f"Insufficient balance for {account!r}: "
            f"available {available}, required {required}"
        )
        self.account = account
        self.available = available
        self.required = required

    def details(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "available": self.available,
            "required": self.required,
        }


class InsufficientAllowance(LedgerError):
    """Delegated spend exceeds the granted allowance"""

    code = "InsufficientAllowance"

    def __init__(self, owner: Hashable, spender: Hashable, available: int, required: int):
        super().__init__(
            f"Insufficient allowance from {owner!r} to {spender!r}: "
            f"available {available}, required {required}"
        )
        self.owner = owner
        self.spender = spender
        self.available = available
        self.required = required

    def details(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "available": self.available,
            "required": self.required,
        }


class AllowanceUnderflow(LedgerError):
    """Explicit decrease requested below zero"""

    code = "AllowanceUnderflow"

    def __init__(self, owner: Hashable, spender: Hashable, available: int, requested: int):
        super().__init__(
            f"Allowance from {owner!r} to {spender!r} cannot be decreased "
            f"by {requested}: current allowance is {available}"
        )
        self.owner = owner
        self.spender = spender
        self.available = available
        self.requested = requested

    def details(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "available": self.available,
            "requested": self.requested,
        }


class Overflow(LedgerError):
    """Arithmetic result would exceed the unsigned 256-bit range"""

    code = "Overflow"

    def __init__(self, operation: str, current: int, delta: int):
        super().__init__(f"Overflow in {operation}: {current} + {delta} exceeds 2**256 - 1")
        self.operation = operation
        self.current = current
        self.delta = delta

    def details(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "current": self.current,
            "delta": self.delta,
        }
