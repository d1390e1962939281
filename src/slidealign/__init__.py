from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("slidealign")
except PackageNotFoundError:
    # package is not installed
    __version__ = "unknown"
