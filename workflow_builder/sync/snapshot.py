""" Last confirmed server state of each step, keyed by presentation node id. """
import copy
from typing import Any, Dict, Iterator, Optional

# Wire field names that are compared when diffing an existing step
TRACKED_FIELDS = (
    "name",
    "order",
    "x",
    "y",
    "left_expression",
    "operation",
    "right_expression",
    "if_true_action",
    "if_true_action_data",
    "if_false_action",
    "if_false_action_data",
    "failure_message",
    "is_active",
)

MISSING = object()


class OriginalSnapshot:
    """
    Per-step copy of every persisted field plus position.

    A field that was never recorded reads as MISSING, which the diff treats as
    "no original value".
    """

    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    def record(self, node_id: str, fields: Dict[str, Any]) -> None:
        """Replace the entry for node_id."""
        self._entries[node_id] = {k: copy.deepcopy(v) for k, v in fields.items() if k in TRACKED_FIELDS or k == "id"}

    def merge(self, node_id: str, fields: Dict[str, Any]) -> None:
        """Fold confirmed fields into an existing entry, keeping everything else."""
        entry = self._entries.setdefault(node_id, {})
        for key, value in fields.items():
            if key in TRACKED_FIELDS or key == "id":
                entry[key] = copy.deepcopy(value)

    def discard(self, node_id: str) -> None:
        self._entries.pop(node_id, None)

    def get(self, node_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(node_id)
        return dict(entry) if entry is not None else None

    def value(self, node_id: str, field_name: str) -> Any:
        return self._entries.get(node_id, {}).get(field_name, MISSING)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
