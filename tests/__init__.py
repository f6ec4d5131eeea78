# Tests for Circuit Simulator
#
# Test organization mirrors source structure:
#   - test_core/: gates, circuits, state vector and measurement
#   - test_noise/: noise channels, configurations and error correction
#   - test_execution/: controller, metrics, simulate_circuit and plots
#
# Running tests:
#   pytest tests/
#   pytest tests/test_core/ -v
#   pytest tests/ -k "continuous"
