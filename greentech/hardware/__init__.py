"""Hardware-facing adapters (broker link to the greenhouse controller)."""
