"""docvault -- document ingestion and vector search.

Uploaded files are stored under a masked name, their text is extracted,
split into overlapping chunks, embedded through a pluggable provider and
kept in SQLite for similarity search.  ``docvault.main`` assembles the
components into a :class:`~docvault.services.document_service.DocumentService`.
"""

__version__ = "0.1.0"
