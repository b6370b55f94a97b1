"""Evidence records, their storage, and AI analysis dispatch."""
