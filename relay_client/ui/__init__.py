"""Client user interfaces."""
