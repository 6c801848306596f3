"""Transaction hashing, assembly and the invoke pipeline."""
