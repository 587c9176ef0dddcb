"""
BASTION Integration Tests

Integration tests running the executor against the simulated facility
controllers, with latency and injected faults.

Running:
    pytest tests/integration/ -v
"""
