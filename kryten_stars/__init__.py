"""kryten-stars — Chat star economy, games and reminders microservice."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kryten-stars")
except PackageNotFoundError:
    __version__ = "0.0.0"
