"""OpenClaw runtime integration layer for the MosBot task backend."""

__version__ = "1.0.0"
