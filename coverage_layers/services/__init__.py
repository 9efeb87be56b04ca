"""Coverage tile services module."""
