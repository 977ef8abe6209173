"""Worker-side engine. Runs in its own process; see ``__main__``."""
