"""DuckDB-based usage index for ccusage-monitor.

Holds every ingested conversation event for the lifetime of the process:
- Exact microsecond timestamps for rolling windows
- Local calendar dates for daily and weekly buckets
- Per-file removal when a log is truncated or replaced
"""

from .schema import IndexSchema
from .index import ModelTotals, UsageIndex

__all__ = [
    "IndexSchema",
    "ModelTotals",
    "UsageIndex",
]
