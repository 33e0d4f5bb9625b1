"""Application services shared by every bounded context."""
