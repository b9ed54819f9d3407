"""
Territory Map Server Test Suite

Tests for marker ingestion, tile/world rendering, ranking and the serving layer.

Structure:
- unit/: Unit tests for individual components
- integration/: Integration tests for generation cycles and the HTTP server
"""
