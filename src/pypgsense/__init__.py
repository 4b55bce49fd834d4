from importlib.metadata import version

try:
    __version__ = version("pypgsense")
except Exception:
    __version__ = "unknown"
