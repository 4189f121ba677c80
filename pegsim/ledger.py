from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Protocol, Tuple
import logging

from .core import Event, EventLog, InsufficientBalance, add, as_uint, format_inventory, sub

logger = logging.getLogger(__name__)

class Journaled(Protocol):
    def snapshot(self) -> Any: ...
    def restore(self, state: Any) -> None: ...

class Journal:
    """
    All-or-nothing execution for every public mutating entry point.

    Components register themselves once; ``atomic()`` snapshots all of them and
    restores the snapshot if the block raises. Nested blocks act as savepoints, so
    a caught failure deep in a call chain only discards its own sub-effects.
    """
    def __init__(self, log: EventLog) -> None:
        self.log = log
        self.tick: int = 0
        self.seq: int = 0
        self.depth: int = 0
        self._parts: List[Journaled] = [log]

    def register(self, part: Journaled) -> None:
        self._parts.append(part)

    @property
    def in_call(self) -> bool:
        return self.depth > 0

    @contextmanager
    def atomic(self) -> Iterator[None]:
        saved: List[Tuple[Journaled, Any]] = [(p, p.snapshot()) for p in self._parts]
        if self.depth == 0:
            self.seq += 1
        self.depth += 1
        try:
            yield
        except Exception:
            for part, state in saved:
                part.restore(state)
            if self.depth == 1:
                logger.debug("rolled back top-level call seq=%d", self.seq)
            raise
        finally:
            self.depth -= 1

    def emit(self, event_type: str, **fields: Any) -> Event:
        e = Event(self.tick, event_type, seq=self.seq, **fields)
        self.log.add(e)
        return e


class TokenLedger:
    """Per-account balances of every asset; pool reserves and engine custody are accounts too."""
    def __init__(self, journal: Journal, debug: bool = False) -> None:
        self.journal = journal
        self.debug = debug
        self.accounts: Dict[str, Dict[str, int]] = {}
        journal.register(self)

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        return {acct: dict(inv) for acct, inv in self.accounts.items()}

    def restore(self, state: Dict[str, Dict[str, int]]) -> None:
        self.accounts = state

    def balance(self, account: str, asset_id: str) -> int:
        return int(self.accounts.get(account, {}).get(asset_id, 0))

    def inventory(self, account: str) -> Dict[str, int]:
        return dict(self.accounts.get(account, {}))

    def total_supply(self, asset_id: str) -> int:
        return sum(inv.get(asset_id, 0) for inv in self.accounts.values())

    def _credit(self, account: str, asset_id: str, amount: int) -> None:
        inv = self.accounts.setdefault(account, {})
        inv[asset_id] = add(inv.get(asset_id, 0), amount)

    def _debit(self, account: str, asset_id: str, amount: int) -> None:
        have = self.balance(account, asset_id)
        if have < amount:
            raise InsufficientBalance(
                f"{account} holds {have} {asset_id}, needs {amount}"
            )
        inv = self.accounts[account]
        inv[asset_id] = sub(have, amount)
        if inv[asset_id] == 0:
            inv.pop(asset_id, None)

    def mint(self, account: str, asset_id: str, amount: int) -> None:
        amount = as_uint(amount, "amount")
        with self.journal.atomic():
            self._credit(account, asset_id, amount)
            self.journal.emit("TOKENS_MINTED", actor_id=account, asset_id=asset_id, amount=amount)

    def transfer(self, sender: str, recipient: str, asset_id: str, amount: int) -> None:
        amount = as_uint(amount, "amount")
        if amount == 0:
            return
        debug = self.debug and logger.isEnabledFor(logging.DEBUG)
        if debug:
            before = self.inventory(sender)
        with self.journal.atomic():
            self._debit(sender, asset_id, amount)
            self._credit(recipient, asset_id, amount)
        if debug:
            logger.debug(
                "[INV] transfer %s -> %s asset=%s amount=%d before={ %s } after={ %s }",
                sender,
                recipient,
                asset_id,
                amount,
                format_inventory(before),
                format_inventory(self.inventory(sender)),
            )
