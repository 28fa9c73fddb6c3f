"""AdLex embedding service: batch vector generation for dictionary phrases."""
