from __future__ import annotations
from typing import Tuple
import logging

from .core import AuthorizationError, BPS, as_uint, wad_to_float
from .ledger import Journal

logger = logging.getLogger(__name__)

class FairValueOracle:
    """
    Trusted push oracle: one fair value (wad) and one risk score (bps), written by a
    single updater. No averaging and no staleness checks; liveness belongs to
    whatever process pushes the updates.
    """
    def __init__(self, journal: Journal, updater: str, fair_value: int, risk_bps: int = 0) -> None:
        self.journal = journal
        self.updater = updater
        self.fair_value = self._check_fair_value(fair_value)
        self.risk_bps = self._check_risk(risk_bps)
        journal.register(self)

    @staticmethod
    def _check_fair_value(value: int) -> int:
        value = as_uint(value, "fair_value")
        if value == 0:
            raise ValueError("fair_value must be positive")
        return value

    @staticmethod
    def _check_risk(value: int) -> int:
        value = as_uint(value, "risk_bps")
        if value > BPS:
            raise ValueError(f"risk_bps above {BPS}: {value}")
        return value

    def snapshot(self) -> Tuple[int, int, str]:
        return self.fair_value, self.risk_bps, self.updater

    def restore(self, state: Tuple[int, int, str]) -> None:
        self.fair_value, self.risk_bps, self.updater = state

    def _require_updater(self, caller: str) -> None:
        if caller != self.updater:
            raise AuthorizationError(f"{caller} is not the oracle updater")

    def update(self, caller: str, fair_value: int, risk_bps: int) -> None:
        with self.journal.atomic():
            self._require_updater(caller)
            self.fair_value = self._check_fair_value(fair_value)
            self.risk_bps = self._check_risk(risk_bps)
            self.journal.emit(
                "ORACLE_UPDATED",
                actor_id=caller,
                amount=self.fair_value,
                meta={"risk_bps": self.risk_bps},
            )
        logger.info("oracle update nav=%.6f risk_bps=%d", wad_to_float(self.fair_value), self.risk_bps)

    def set_updater(self, caller: str, new_updater: str) -> None:
        with self.journal.atomic():
            self._require_updater(caller)
            self.updater = new_updater
            self.journal.emit("UPDATER_CHANGED", actor_id=caller, meta={"new_updater": new_updater})

    def read(self) -> Tuple[int, int]:
        return self.fair_value, self.risk_bps
