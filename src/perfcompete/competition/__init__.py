"""Competition running: benchmarks, configuration, state and the rerun loop."""
