"""
ASGI entrypoint: expose `app` pour les process managers.

- En production, un process manager (ex: gunicorn -k uvicorn.workers.UvicornWorker) importe
  `storefront.asgi:app`; toute la configuration FastAPI est centralisée dans storefront.app_setup.
"""

from storefront.app import app

__all__ = ["app"]
