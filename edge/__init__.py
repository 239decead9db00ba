"""
spa-edge – single-origin edge server for a single-page application.

Serves the built SPA bundle and forwards /api/* calls to the backend.
"""

__version__ = "1.0.0"
