from __future__ import annotations

"""
yoy_sales_report

Rank the top products per department and year from raw sales transactions and
compare each one with its prior-year revenue and quantity.
"""

from .formatting import format_report
from .yoy import PriorYearScope, run_yoy_top5_report

__all__ = ["PriorYearScope", "__version__", "format_report", "run_yoy_top5_report"]
__version__ = "0.1.0"
