"""Periodic task handlers for the RDAM worker.

- expiry: Expire unpaid requests and published certificates
"""

from rdam.worker.handlers.expiry import ExpirySweeper, SweepResult, run_expiry_sweep

__all__ = ["ExpirySweeper", "SweepResult", "run_expiry_sweep"]
