"""taskpad: a personal task list with optimistic sync against a remote store."""
