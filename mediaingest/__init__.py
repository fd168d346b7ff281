"""Media asset ingestion: uploads, inline payloads and remote links into a blob store."""

__version__ = "0.1.0"
