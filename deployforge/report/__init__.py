from .aggregator import Summary, render_report, render_status, summarize

__all__ = ["Summary", "render_report", "render_status", "summarize"]
