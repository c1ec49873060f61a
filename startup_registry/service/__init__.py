"""HTTP service exposing search, administration, and embedding maintenance."""
