"""Concrete adapters behind the interfaces in ``docvault.interfaces``."""
