"""NoteDB command line."""
