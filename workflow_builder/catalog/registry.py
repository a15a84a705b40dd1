""" Datasources available to condition expressions, per execution point. """
from typing import Dict, List, Optional

from ..api.client import StepStore
from ..api.schema import Datasource
from ..core.logging import get_logger
from ..graph.models import ConditionStep
from ..workflow.expressions import referenced_datasources

logger = get_logger(__name__)


class DatasourceCatalog:
    """ Read-only view of the datasources the store offers for one execution point. """

    def __init__(self, execution_point: str = "", datasources: Optional[List[Datasource]] = None):
        self.execution_point = execution_point
        self._datasources: Dict[str, Datasource] = {}
        for datasource in datasources or []:
            self.register(datasource)

    @classmethod
    def load(cls, store: StepStore, execution_point: str) -> "DatasourceCatalog":
        response = store.fetch_datasources(execution_point)
        logger.info(f"Loaded {len(response.datasources)} datasources for {execution_point}")
        return cls(execution_point, response.datasources)

    def register(self, datasource: Datasource) -> Datasource:
        self._datasources[datasource.name] = datasource
        return datasource

    def get(self, name: str) -> Datasource:
        if name not in self._datasources:
            raise ValueError(f"Datasource not found: {name}")
        return self._datasources[name]

    def __contains__(self, name: str) -> bool:
        return name in self._datasources

    def __len__(self) -> int:
        return len(self._datasources)

    def names(self) -> List[str]:
        return list(self._datasources)

    def search(self, term: Optional[str]) -> List[Datasource]:
        """Datasources whose name contains term, ignoring case. An empty term matches all."""
        needle = (term or "").strip().lower()
        return [ds for ds in self._datasources.values() if needle in ds.name.lower()]


def unknown_datasources(step: ConditionStep, catalog: DatasourceCatalog) -> List[str]:
    """
    References in either expression of step that the catalog does not know.

    The caller reports these as warnings; they never block a save.
    """
    missing = []
    for expression in (step.left_expression, step.right_expression):
        for name in referenced_datasources(expression):
            if name not in catalog and name not in missing:
                missing.append(name)
    if missing:
        logger.warning(f"Step '{step.name or step.node_id}' references unknown datasources: {missing}")
    return missing
