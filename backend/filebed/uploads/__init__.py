"""Chunked upload lifecycle for FileBed.

A client declares a file (name, size, chunk count, backend), sends the
chunks in any order, then asks for completion. Completion reassembles the
chunks, commits the file to the chosen backend, records it in the catalog
and purges the staged data.

Supported backends:
- blob: S3-compatible object store (R2)
- relay: Telegram Bot API
"""
