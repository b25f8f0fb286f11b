"""
Ovenly Backend: Application Package
======================================

Layout:

    ┌──────────────────────────────────────────┐
    │   modules/<feature>/routes.py            │  ← declared on import, discovered
    ├──────────────────────────────────────────┤
    │   core (router, http context, init)      │  ← route registration lifecycle
    ├──────────────────────────────────────────┤
    │   services, middleware, shared           │  ← uploads, validation, paths
    ├──────────────────────────────────────────┤
    │   database (Motor)                       │  ← one shared connection
    └──────────────────────────────────────────┘
"""

__version__ = "1.0.0"
