"""Browser-side execution: element resolution, healing, waits and action dispatch."""
