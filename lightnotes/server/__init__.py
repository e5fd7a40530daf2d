"""Reference object-store endpoint for lightnotes sync (FastAPI over S3)."""
