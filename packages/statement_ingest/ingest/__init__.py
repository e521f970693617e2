"""Statement file reading, format detection and row parsing."""
