"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Core config, errors and metadata types
    - Relevance scoring and importance heuristics
    - Short-term and long-term stores on the shared engine
    - Association graph symmetry
    - Consolidation and the memory manager
    - Context window admission, eviction and assembly
    - Structured logging and metrics export
"""
