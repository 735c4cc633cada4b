"""Run reporting."""

from .export import export_csv, export_json, snapshots_frame, summarize

__all__ = ["export_csv", "export_json", "snapshots_frame", "summarize"]
