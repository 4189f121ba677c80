from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List
import numpy as np
import pandas as pd

@dataclass
class MetricsStore:
    tick_rows: List[Dict[str, Any]] = field(default_factory=list)
    intervention_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_tick(self, row: Dict[str, Any]) -> None:
        self.tick_rows.append(row)

    def add_intervention_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.intervention_rows.extend(rows)

    def tick_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.tick_rows)

    def intervention_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.intervention_rows)

    def peg_summary(self, threshold_bps: int) -> Dict[str, float]:
        df = self.tick_df()
        if df.empty:
            return {
                "ticks": 0,
                "mean_deviation_bps": 0.0,
                "max_deviation_bps": 0.0,
                "p95_deviation_bps": 0.0,
                "share_within_threshold": 0.0,
                "interventions": 0,
                "intervention_failures": 0,
            }
        dev = df["deviation_bps"].to_numpy(dtype=float)
        return {
            "ticks": int(len(df)),
            "mean_deviation_bps": float(np.mean(dev)),
            "max_deviation_bps": float(np.max(dev)),
            "p95_deviation_bps": float(np.percentile(dev, 95)),
            "share_within_threshold": float(np.mean(dev <= threshold_bps)),
            "interventions": int(df["interventions_tick"].sum()),
            "intervention_failures": int(df["intervention_failures_tick"].sum()),
        }
