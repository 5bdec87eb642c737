"""Runtime helpers: channels, payload codec and logging."""
