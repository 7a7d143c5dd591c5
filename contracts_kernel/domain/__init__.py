"""Pure domain layer: clock, lifecycle, and contract records. Zero I/O."""
