from prometheus_client import REGISTRY, Counter
from typing import Any

def safe_counter(name: str, documentation: str, labelnames: list[str] | None = None) -> Any:
    """重複 import（例如測試重新載入模組）時沿用既有的 Counter，避免 Duplicated timeseries"""
    if name in REGISTRY._names_to_collectors:
        return REGISTRY._names_to_collectors[name]
    return Counter(name, documentation, labelnames or [])
