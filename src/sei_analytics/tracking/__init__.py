"""Entity tracking engine: registry, history, fan-out and event routing."""
