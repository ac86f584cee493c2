"""NoteDB HTTP API."""
