"""HTTP API for Clipwise (FastAPI app in app.py, response models in models.py)."""
