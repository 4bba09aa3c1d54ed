"""
Gateway implementations of core.ports.Gateway.

Components:
- supabase.py: GoTrue auth + PostgREST over httpx, session persisted to a file
- session_watch.py: polling loop that follows session file changes
- offline.py: in-memory gateway for demos and local runs
"""
