"""Try-on pipeline components: validation, encoding, gating, submission and polling."""
