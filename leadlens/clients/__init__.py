"""External collaborator clients."""
