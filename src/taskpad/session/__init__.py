"""Session subsystem: session_store.py tracks the signed-in identity."""
