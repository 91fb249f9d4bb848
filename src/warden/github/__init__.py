from warden.github.api import API, RemoveResult

__all__ = ["API", "RemoveResult"]
