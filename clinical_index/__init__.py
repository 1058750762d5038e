"""
Clinical chunk indexing and multi-hop retrieval.

Indexes clinical text chunks into a FAISS vector store, a SQL metadata
store, a BM25 keyword index and an in-memory metadata cache, and retrieves
them with similarity search plus relationship expansion.
"""

__version__ = "0.1.0"
