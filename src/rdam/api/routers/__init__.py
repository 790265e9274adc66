"""RDAM API routers.

Each router handles one namespace under /api/v1:
- solicitudes: Citizen request submission, verification, status and payment
- webhooks: Payment gateway notifications (HMAC-signed)
- certificados: Certificate download by token
- auth: Operator login and logout
- interno: Operator listing, certificate upload and token regeneration
- operadores: Operator account administration (admins only)
"""

from rdam.api.routers.auth import router as auth_router
from rdam.api.routers.certificados import router as certificados_router
from rdam.api.routers.interno import router as interno_router
from rdam.api.routers.operadores import router as operadores_router
from rdam.api.routers.solicitudes import router as solicitudes_router
from rdam.api.routers.webhooks import router as webhooks_router

__all__ = [
    "auth_router",
    "certificados_router",
    "interno_router",
    "operadores_router",
    "solicitudes_router",
    "webhooks_router",
]
