"""RDAM worker service.

Background process for time-based lifecycle changes:
- Expiry of unpaid requests past the pending timeout
- Expiry of published certificates past their validity window
- Removal of expired certificate files from object storage

Usage:
    # Console script installed with the package
    rdam-worker

    # Or as a module
    python -m rdam.worker.main
"""

from rdam.worker.main import Worker, run

__all__ = ["Worker", "run"]
