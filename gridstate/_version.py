import importlib.metadata

try:
    __version__ = importlib.metadata.version("gridstate")
except importlib.metadata.PackageNotFoundError:
    # not installed, running from a source checkout
    __version__ = "0.1.0"
