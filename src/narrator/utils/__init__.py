"""
Utility Modules for narrator.

This package provides common utility functions used across the codebase:
    - wav.py: WAV container encoding/parsing for raw PCM
    - timeit.py: Performance measurement utilities
"""
