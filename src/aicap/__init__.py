"""AICAP security core: SSRF-guarded webhook dispatch and API key credentials."""

__version__ = "0.1.0"
