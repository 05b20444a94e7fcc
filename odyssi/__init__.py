"""
Odyssi - Self-hosted Journaling and Blogging

Backup, restore and media maintenance for an Odyssi installation,
served through a small FastAPI application.
"""

__version__ = "0.1.0"
