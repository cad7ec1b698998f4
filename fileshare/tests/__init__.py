"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Core types, results, cancellation and configuration
    - Signature detection and key resolution
    - Content store operations on both key variants
    - HTTP routing layer and CLI
    - Logging and metrics
"""
