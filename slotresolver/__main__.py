"""
Entry point for ``python -m slotresolver``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
