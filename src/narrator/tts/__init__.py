"""
Speech Generation Pipeline Components.

This package provides everything between validated text and raw audio:
    - chunker.py: Text splitting into model-safe chunks
    - retry.py: Per-chunk backoff retrier and state machine
    - pipeline.py: Sequential chunk driver with progress and cancellation
    - assembler.py: Ordered concatenation of chunk audio
    - client.py: Remote speech model clients (Gemini)
    - cache.py: In-memory exact-text result cache with TTL
    - rate_limit.py: Per-caller fixed window rate limiting
    - errors.py: SpeechError hierarchy and error codes
"""
