from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List
import pandas as pd

@dataclass
class MetricsStore:
    pool_rows: List[Dict[str, Any]] = field(default_factory=list)
    asset_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_pool(self, row: Dict[str, Any]) -> None:
        self.pool_rows.append(row)

    def add_asset_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.asset_rows.extend(rows)

    def pool_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.pool_rows)

    def asset_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.asset_rows)
