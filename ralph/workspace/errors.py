"""Workspace errors. Each carries enough context for the CLI to suggest a fix."""


class WorkspaceError(Exception):
    pass


class InvalidWorkspaceName(WorkspaceError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"invalid workspace name {name!r}: use only letters, digits, '.', '_' and '-'"
        )


class WorkspaceExists(WorkspaceError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"workspace {name!r} already exists")


class WorkspaceNotFound(WorkspaceError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"workspace {name!r} not found")


class WorkspaceMissing(WorkspaceError):
    """Registered, but the directory is gone."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"workspace {name!r} directory is missing")
