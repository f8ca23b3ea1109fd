"""Document records referenced by share grants and access logs."""

from .model import Document

__all__ = ['Document']
