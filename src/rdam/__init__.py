"""RDAM - certificate request service.

Citizens request a registry certificate, verify their email with a one-time
code and pay through the payment gateway. Internal operators then upload
the certificate, which stays downloadable for a fixed validity window.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
