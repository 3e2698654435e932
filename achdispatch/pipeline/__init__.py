"""Per-shard merge storage, aggregation, manual cutoffs, cleanup and file routing."""