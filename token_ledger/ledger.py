"""
Token Ledger Engine

Balance and allowance bookkeeping for a single fungible token. Total supply
always equals the sum of all balances, and every operation validates all of
its preconditions before touching state, so a failed call leaves the ledger
exactly as it was.
"""

from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Deque, Dict, Hashable, List, Optional, Tuple
import threading

from .errors import (
    AllowanceUnderflow, InsufficientAllowance, InsufficientBalance,
    InvalidAccount, InvalidAmount, InvalidOwner, InvalidReceiver,
    InvalidSender, InvalidSpender, LedgerError, Overflow
)
from .events import ApprovalEvent, EventDispatcher, LedgerEvent, TransferEvent
from .logging_config import get_logger, log_action


MAX_UINT256 = 2**256 - 1

# Allowance value that is never decremented by spending
UNLIMITED_ALLOWANCE = MAX_UINT256

ZERO_ADDRESS = "0x" + "0" * 40


@dataclass(frozen=True)
class TokenMetadata:
    """Display data for the token. Has no bearing on arithmetic."""
    name: str
    symbol: str
    decimals: int = 18


class TokenLedger:
    """
    Authoritative record of balances and allowances for one token

    All operations are serialized by a single re-entrant lock. Events are
    queued while an operation runs and published to the dispatcher once
    every write has been applied.
    """

    def __init__(
        self,
        metadata: TokenMetadata,
        initial_holder: Hashable,
        initial_supply: int,
        dispatcher: Optional[EventDispatcher] = None,
        null_account: Hashable = ZERO_ADDRESS
    ):
        """
        Create the ledger and mint the initial supply

        Args:
            metadata: Token name, symbol and decimals
            initial_holder: Account credited with the whole initial supply
            initial_supply: Amount minted at creation
            dispatcher: Sink receiving Transfer and Approval events
            null_account: Identifier reserved as "no account"

        Raises:
            InvalidAccount: If initial_holder is the null identifier
            InvalidAmount: If initial_supply is not an unsigned 256-bit integer
        """
        self.metadata = metadata
        self.null_account = null_account
        self.dispatcher = dispatcher if dispatcher is not None else EventDispatcher()
        self.logger = get_logger("token_ledger.ledger")

        self._total_supply = 0
        self._balances: Dict[Hashable, int] = {}
        self._allowances: Dict[Tuple[Hashable, Hashable], int] = {}
        self._lock = threading.RLock()
        self._pending_events: List[LedgerEvent] = []
        # Events of completed operations awaiting delivery, oldest first
        self._outbox: Deque[LedgerEvent] = deque()
        self._publishing = False

        self.mint(initial_holder, initial_supply)

    # Metadata

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def symbol(self) -> str:
        return self.metadata.symbol

    @property
    def decimals(self) -> int:
        return self.metadata.decimals

    # Views

    @property
    def total_supply(self) -> int:
        with self._lock:
            return self._total_supply

    def balance_of(self, account: Hashable) -> int:
        """Get balance of an account, 0 if it never held tokens"""
        with self._lock:
            return self._balances.get(account, 0)

    def allowance_of(self, owner: Hashable, spender: Hashable) -> int:
        """Get amount spender may still move out of owner's balance"""
        with self._lock:
            return self._allowances.get((owner, spender), 0)

    def is_null(self, account: Hashable) -> bool:
        return account is None or account == self.null_account

    def export_state(self) -> Dict[str, Any]:
        """Copy of total supply, balances and allowances at one instant"""
        with self._lock:
            return {
                "total_supply": self._total_supply,
                "balances": dict(self._balances),
                "allowances": dict(self._allowances),
            }

    def check_invariants(self) -> bool:
        """Check conservation and sign invariants over the whole ledger"""
        with self._lock:
            return (
                self._total_supply == sum(self._balances.values())
                and all(0 <= v <= MAX_UINT256 for v in self._balances.values())
                and all(0 <= v <= MAX_UINT256 for v in self._allowances.values())
                and not any(self.is_null(a) for a in self._balances)
            )

    # Public operations

    def mint(self, account: Hashable, amount: int) -> None:
        """
        Issue new supply to an account

        Raises:
            InvalidAccount: If account is the null identifier
            InvalidAmount: If amount is not an unsigned 256-bit integer
            Overflow: If total supply or the balance would exceed 2**256 - 1
        """
        with self._operation("mint", resource=account, amount=amount):
            if self.is_null(account):
                raise InvalidAccount(account)
            self._require_amount(amount)

            new_total = self._checked_add("mint", self._total_supply, amount)
            new_balance = self._checked_add("mint", self._balances.get(account, 0), amount)

            self._total_supply = new_total
            self._balances[account] = new_balance
            self._emit(TransferEvent(self.null_account, account, amount))

    def transfer(self, caller: Hashable, to: Hashable, amount: int) -> bool:
        """
        Move amount from caller's balance to another account

        Returns:
            True. Any failure is raised instead.

        Raises:
            InvalidSender, InvalidReceiver: If either side is null
            InsufficientBalance: If caller holds less than amount
        """
        with self._operation("transfer", resource=caller, to=to, amount=amount):
            self._require_amount(amount)
            self._transfer(caller, to, amount)
        return True

    def approve(self, caller: Hashable, spender: Hashable, amount: int) -> bool:
        """
        Set spender's allowance over caller's balance to exactly amount

        Any prior allowance is overwritten, whatever its value.

        Raises:
            InvalidOwner, InvalidSpender: If either side is null
        """
        with self._operation("approve", resource=caller, spender=spender, amount=amount):
            self._require_amount(amount)
            self._approve(caller, spender, amount)
        return True

    def transfer_from(
        self,
        caller: Hashable,
        sender: Hashable,
        receiver: Hashable,
        amount: int
    ) -> bool:
        """
        Move amount out of sender's balance on behalf of caller

        The allowance sender granted to caller is checked first, then the
        transfer itself. Nothing is written unless both succeed.

        Raises:
            InsufficientAllowance: If caller's allowance is below amount
            InvalidSender, InvalidReceiver: If either side is null
            InsufficientBalance: If sender holds less than amount
        """
        with self._operation("transfer_from", resource=sender, caller=caller,
                             to=receiver, amount=amount):
            self._require_amount(amount)
            self._check_allowance(sender, caller, amount)
            self._check_transfer(sender, receiver, amount)

            self._spend_allowance(sender, caller, amount)
            self._transfer(sender, receiver, amount)
        return True

    def increase_allowance(self, caller: Hashable, spender: Hashable, added_value: int) -> bool:
        """
        Raise spender's allowance by added_value

        Raises:
            Overflow: If the new allowance would exceed 2**256 - 1
        """
        with self._operation("increase_allowance", resource=caller, spender=spender,
                             amount=added_value):
            self._require_amount(added_value)
            current = self._allowances.get((caller, spender), 0)
            new_allowance = self._checked_add("increase_allowance", current, added_value)
            self._approve(caller, spender, new_allowance)
        return True

    def decrease_allowance(self, caller: Hashable, spender: Hashable, subtracted_value: int) -> bool:
        """
        Lower spender's allowance by subtracted_value

        Raises:
            AllowanceUnderflow: If subtracted_value exceeds the current allowance
        """
        with self._operation("decrease_allowance", resource=caller, spender=spender,
                             amount=subtracted_value):
            self._require_amount(subtracted_value)
            current = self._allowances.get((caller, spender), 0)
            if current < subtracted_value:
                raise AllowanceUnderflow(caller, spender, current, subtracted_value)
            self._approve(caller, spender, current - subtracted_value)
        return True

    # Internal primitives

    def _transfer(self, sender: Hashable, receiver: Hashable, amount: int) -> None:
        self._check_transfer(sender, receiver, amount)

        self._balances[sender] = self._balances.get(sender, 0) - amount
        # Read after the debit so that sender == receiver nets to zero
        self._balances[receiver] = self._balances.get(receiver, 0) + amount
        self._emit(TransferEvent(sender, receiver, amount))

    def _check_transfer(self, sender: Hashable, receiver: Hashable, amount: int) -> None:
        if self.is_null(sender):
            raise InvalidSender(sender)
        if self.is_null(receiver):
            raise InvalidReceiver(receiver)

        available = self._balances.get(sender, 0)
        if available < amount:
            raise InsufficientBalance(sender, available, amount)
        if sender != receiver:
            self._checked_add("transfer", self._balances.get(receiver, 0), amount)

    def _approve(self, owner: Hashable, spender: Hashable, amount: int) -> None:
        if self.is_null(owner):
            raise InvalidOwner(owner)
        if self.is_null(spender):
            raise InvalidSpender(spender)

        self._allowances[(owner, spender)] = amount
        self._emit(ApprovalEvent(owner, spender, amount))

    def _spend_allowance(self, owner: Hashable, spender: Hashable, amount: int) -> None:
        remaining = self._check_allowance(owner, spender, amount)
        if remaining is not None:
            self._approve(owner, spender, remaining)

    def _check_allowance(self, owner: Hashable, spender: Hashable, amount: int) -> Optional[int]:
        """Validate a delegated spend, returning the allowance left afterwards (None if unlimited)"""
        current = self._allowances.get((owner, spender), 0)
        if current == UNLIMITED_ALLOWANCE:
            return None
        if current < amount:
            raise InsufficientAllowance(owner, spender, current, amount)
        if self.is_null(owner):
            raise InvalidOwner(owner)
        if self.is_null(spender):
            raise InvalidSpender(spender)
        return current - amount

    def _burn(self, account: Hashable, amount: int) -> None:
        """Destroy amount from account's balance, reducing total supply"""
        with self._operation("burn", resource=account, amount=amount):
            if self.is_null(account):
                raise InvalidSender(account)
            self._require_amount(amount)

            available = self._balances.get(account, 0)
            if available < amount:
                raise InsufficientBalance(account, available, amount)

            self._balances[account] = available - amount
            self._total_supply -= amount
            self._emit(TransferEvent(account, self.null_account, amount))

    def _require_amount(self, amount: Any) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount(amount)
        if amount < 0 or amount > MAX_UINT256:
            raise InvalidAmount(amount)

    def _checked_add(self, operation: str, current: int, delta: int) -> int:
        result = current + delta
        if result > MAX_UINT256:
            raise Overflow(operation, current, delta)
        return result

    def _emit(self, event: LedgerEvent) -> None:
        self._pending_events.append(event)

    @contextmanager
    def _operation(self, action: str, resource: Hashable, **details):
        """
        Run one ledger operation under the lock

        Logs the outcome and publishes the events it queued once all of its
        writes are in place. Failures are logged and re-raised.
        """
        with self._lock:
            try:
                yield
            except LedgerError as e:
                self._pending_events.clear()
                log_action(
                    self.logger, "warning", f"Rejected {action}: {e}",
                    action=action, resource=f"account:{resource}",
                    extra={"error": e.code, **_stringify(details)}
                )
                raise
            except Exception:
                self._pending_events.clear()
                raise

            events, self._pending_events = self._pending_events, []
            log_action(
                self.logger, "info", f"Completed {action}",
                action=action, resource=f"account:{resource}",
                extra={"events": len(events), **_stringify(details)}
            )
            self._outbox.extend(events)
            self._drain_outbox()

    def _drain_outbox(self) -> None:
        # A handler re-entering the ledger only queues its events here;
        # the outermost drain delivers them after the current ones.
        if self._publishing:
            return
        self._publishing = True
        try:
            while self._outbox:
                self.dispatcher.publish(self._outbox.popleft())
        finally:
            self._publishing = False


def _stringify(details: Dict[str, Any]) -> Dict[str, str]:
    # Amounts can exceed the JSON-safe integer range
    return {key: str(value) for key, value in details.items()}
