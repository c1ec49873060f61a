"""Company administration."""
