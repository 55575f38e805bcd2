"""Statement derivation and analysis engines."""
