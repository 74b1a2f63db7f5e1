"""User-facing interfaces for labelscan."""
