"""The repository engine: document model, layout, validation, migration and compilation."""
