from storage.providers.http.project_repo import HttpProjectRepo

__all__ = ["HttpProjectRepo"]
