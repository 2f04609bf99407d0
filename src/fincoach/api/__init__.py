"""
API package exposing FastAPI routes for the coaching service.

See ``main.py`` for application creation and ``routers`` for individual
route modules.
"""
