"""User-facing operating modes."""
