# Shared helpers package init
"""
Ovenly Backend: Shared Helpers
=================================

    - paths.py:    base directory resolution and upload path validation
    - hashing.py:  URL-safe SHA-256 digests for files and strings
"""
