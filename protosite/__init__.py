"""Protosite: convert Canva designs into Vite + React projects and publish them to GitHub.

Quick usage::

    from protosite.server import create_app

    app = create_app()
"""

__version__ = "0.1.0"
