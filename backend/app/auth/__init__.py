# app/auth/__init__.py
"""
Authentication modules for the resume access service.

This package contains:
- identity.py: Canonical authenticated actor (student, company or admin)
"""
from app.auth.identity import Actor

__all__ = ["Actor"]
