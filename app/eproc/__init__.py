"""Monitor for open procedural deadlines on the eproc (TJRS) portal."""
