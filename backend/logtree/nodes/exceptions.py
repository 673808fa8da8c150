class NodeConsistencyError(RuntimeError):
    """Parent/child links in the tree were broken by an earlier defect.

    Raised when linking references a node that is missing, already has a
    different parent, or is not at the level being collapsed. Never recovered
    from: the ingest that hits it is aborted.
    """

    def __init__(self, message: str, *, level: int | None = None,
                 node_ids: list[str] | None = None, parent_id: str | None = None):
        super().__init__(message)
        self.level = level
        self.node_ids = list(node_ids or [])
        self.parent_id = parent_id
        # Nodes the failed ingest had already written before the fault
        self.committed: list = []
