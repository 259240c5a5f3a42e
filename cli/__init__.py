"""Command line hosts built on ptreex."""
