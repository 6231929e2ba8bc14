"""Per-chain configuration: genesis, rollup config, secrets and placeholders."""
