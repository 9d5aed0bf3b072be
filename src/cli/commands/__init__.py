"""CLI command modules.

Command Groups:
- charts: Deploy, destroy and inspect Helm chart plans
"""

from .charts import charts_app

__all__ = ["charts_app"]
