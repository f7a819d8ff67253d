"""
awaitguard/__main__.py
======================

Entry point for ``python -m awaitguard``; see :mod:`awaitguard.main`.
"""

from awaitguard.main import main

if __name__ == "__main__":
    raise SystemExit(main())
