from typing import Any, List

import numpy as np
import pandas as pd
from astropy.table import Table
from numpy.typing import NDArray


class _SourceCatalog:
    def __init__(self, sources: pd.DataFrame):
        self.sources = sources

    @classmethod
    def from_array(cls, sources: NDArray[Any]) -> "_SourceCatalog":
        return cls(pd.DataFrame(sources))

    def filter_detection_flag(self) -> None:
        if "flag" not in self.sources:
            return

        self.sources = self.sources[self.sources["flag"] < 8].copy()

    def calculate_object_type(self) -> None:
        """Roundness of sources as minor over major axis, close to 1 for stars."""
        self.sources["objtype"] = np.where(self.sources["a"] > 0, self.sources["b"] / self.sources["a"], 0.0)

    def apply_fits_origin_convention(self) -> None:
        self.sources["x"] += 1
        self.sources["y"] += 1

    def to_table(self, keys: List[str]) -> Table:
        return Table.from_pandas(self.sources[keys].reset_index(drop=True))
