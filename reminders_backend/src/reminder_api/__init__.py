"""
Reminders backend package.

Decides which open training assignments are due a reminder today and records
each decision in the audit log. The FastAPI app lives in `.main`.
"""

from .evaluator import evaluate  # noqa: F401
