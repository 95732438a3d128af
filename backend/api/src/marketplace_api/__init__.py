"""FastAPI application for the marketplace booking core."""
