"""
BASTION Test Suite

This package contains all tests for the BASTION response system.

Test Organization:
    tests/
    ├── __init__.py          # This file
    ├── conftest.py          # Shared fixtures (simulated controllers, executor)
    ├── unit/                # Unit tests (no external dependencies)
    ├── integration/         # Executor + simulators across concurrent callers
    └── e2e/                 # Command line and signal paths

Running Tests:
    # Run all tests
    pytest tests/

    # Skip end-to-end tests
    pytest tests/ -m "not e2e"

Requirements:
    pip install -e ".[test]"
"""
