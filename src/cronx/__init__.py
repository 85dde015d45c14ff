"""cronx: scheduled HTTP requests with retries and an execution log."""

__version__ = "0.1.0"
