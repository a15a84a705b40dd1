""" Example: fetch a workflow from the step store and write it out as YAML for review. """
import sys
from pathlib import Path

from workflow_builder.api.client import HttpStepStore
from workflow_builder.core.logging import setup_logging
from workflow_builder.editor import WorkflowEditor


def main():
    setup_logging()
    workflow_id = int(sys.argv[1]) if len(sys.argv) > 1 else 1
    out_path = Path(f"workflow_{workflow_id}.yaml")

    with HttpStepStore() as store:
        editor = WorkflowEditor.open(store, workflow_id)
        for node_id, names in editor.datasource_warnings().items():
            print(f"{node_id}: unknown datasources {', '.join(names)}")
        out_path.write_text(editor.export_yaml())

    print(f"Wrote workflow YAML to: {out_path}")


if __name__ == '__main__':
    main()
