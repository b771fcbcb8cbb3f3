from . import install, join

__all__ = ['install', 'join']
