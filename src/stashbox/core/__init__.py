"""Core package of Stashbox."""
