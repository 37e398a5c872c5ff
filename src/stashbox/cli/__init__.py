"""Command-line frontend for Stashbox."""
