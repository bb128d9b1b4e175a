# ABOUTME: Exposes the metrics facade, the only surface external callers use.

from .facade import MetricsFacade

__all__ = ["MetricsFacade"]
