"""
Services package for the arena: persistence-backed services, collaborators
consumed by the engine, and the engine facade itself.
"""

from .base import BaseService

__all__ = ['BaseService']
