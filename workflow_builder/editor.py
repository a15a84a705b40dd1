""" Editor facade: one open workflow with its edit session, sync engine and datasource catalog. """
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .api.client import StepStore
from .catalog.registry import DatasourceCatalog, unknown_datasources
from .core.errors import RemoteStoreError
from .core.logging import get_logger
from .editing.session import EditSession
from .graph.model import GraphModel
from .integrations.yaml_export import dump_workflow_yaml
from .presentation.adapter import load_graph, render
from .sync.engine import Notifier, SaveReport, SyncEngine
from .sync.snapshot import OriginalSnapshot

logger = get_logger(__name__)


@dataclass
class EditorStatus:
    dirty: bool
    saving: bool
    last_report: Optional[SaveReport] = None
    errors: List[str] = field(default_factory=list)


class WorkflowEditor:

    def __init__(self, graph: GraphModel, store: StepStore, snapshot: Optional[OriginalSnapshot] = None,
                 notifier: Optional[Notifier] = None, on_error: Optional[Callable[[str], None]] = None):
        self.graph = graph
        self.store = store
        self.snapshot = snapshot if snapshot is not None else OriginalSnapshot()
        self.session = EditSession(graph, store, self.snapshot)
        self.sync = SyncEngine(graph, store, self.snapshot, notifier)
        self.on_error = on_error or logger.error
        self.last_report: Optional[SaveReport] = None
        self.errors: List[str] = []
        self._catalog: Optional[DatasourceCatalog] = None

    @classmethod
    def open(cls, store: StepStore, workflow_id: int, **kwargs) -> "WorkflowEditor":
        """Fetch a workflow from the store and start editing it."""
        graph, snapshot = load_graph(store.fetch_workflow(workflow_id))
        return cls(graph, store, snapshot, **kwargs)

    @property
    def status(self) -> EditorStatus:
        return EditorStatus(
            dirty=self.sync.dirty,
            saving=self.sync.saving,
            last_report=self.last_report,
            errors=list(self.errors),
        )

    def save(self) -> SaveReport:
        self.last_report = self.sync.save()
        return self.last_report

    def delete_node(self, node_id: str) -> List[str]:
        """
        Delete a node through the edit session.

        A refused remote delete is reported and leaves the graph as it was;
        the returned list is then empty.
        """
        try:
            return self.session.delete_node(node_id)
        except RemoteStoreError as e:
            message = f"Failed to delete {node_id}: {e}"
            self.errors.append(message)
            self.on_error(message)
            return []

    def render(self) -> Dict[str, Any]:
        return render(self.graph)

    def export_yaml(self) -> str:
        return dump_workflow_yaml(self.graph)

    # ------------------------------------------------------------------
    # Datasources
    # ------------------------------------------------------------------

    @property
    def datasources(self) -> DatasourceCatalog:
        """Catalog for the workflow's execution point, fetched on first use."""
        if self._catalog is None:
            self._catalog = DatasourceCatalog.load(self.store, self.graph.workflow.execution_point)
        return self._catalog

    def datasource_warnings(self) -> Dict[str, List[str]]:
        """Unknown datasource references per step node id; steps without any are left out."""
        warnings = {}
        for step in self.graph.condition_steps():
            missing = unknown_datasources(step, self.datasources)
            if missing:
                warnings[step.node_id] = missing
        return warnings
