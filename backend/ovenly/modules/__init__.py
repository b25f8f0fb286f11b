"""
Feature modules.

Every routes.py below this package is imported by route discovery at
startup; importing it declares the feature's routes on the shared router.
"""
