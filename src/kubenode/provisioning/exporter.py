#!/usr/bin/env python3
"""
KUBENODE EXPORTER - Host Configuration Writer
---------------------------------------------
Renders YAML configuration documents (crictl, kubeadm) and writes any
configuration file to the host. Writes are full overwrites so re-running
a step never accumulates content.

Author: KubeNode Team
Date: 2026-10-18
"""

import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

logger = logging.getLogger("kubenode.exporter")


class ConfigExporter:
    """
    Converts plain dictionaries into YAML text with Kubernetes-style
    key ordering and writes configuration files in place.
    """

    def __init__(self):
        self.yaml = YAML(typ='rt')
        # Standard K8s: 2 spaces, sequences offset by 2
        self.yaml.indent(mapping=2, sequence=4, offset=2)
        self.yaml.width = 4096
        self.preferred_order = ["apiVersion", "kind", "metadata", "spec", "data"]

    def _get_sorted_map(self, data: Any) -> Any:
        """
        Recursively orders well-known keys first while keeping the relative
        order of everything else.
        """
        if not isinstance(data, dict):
            return data

        keys = list(data.keys())

        def sort_logic(key):
            if key in self.preferred_order:
                return self.preferred_order.index(key)
            return len(self.preferred_order) + keys.index(key)

        sorted_map = CommentedMap()
        for key in sorted(keys, key=sort_logic):
            value = data[key]
            if isinstance(value, dict):
                value = self._get_sorted_map(value)
            elif isinstance(value, list):
                value = [self._get_sorted_map(item) for item in value]
            sorted_map[key] = value
        return sorted_map

    def render(self, docs: List[Dict[str, Any]]) -> str:
        """Renders one or more documents, separated by '---'."""
        stream = io.StringIO()
        for i, doc in enumerate(docs):
            if not doc:
                continue
            if i > 0:
                stream.write("---\n")
            self.yaml.dump(self._get_sorted_map(doc), stream)
        return stream.getvalue()

    def write_yaml(self, path: Path, doc: Dict[str, Any]):
        self.write_text(path, self.render([doc]))

    def write_text(self, path: Path, content: str, mode: Optional[int] = None):
        """Overwrites path with content, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if mode is not None:
            path.chmod(mode)
        logger.info("Wrote %s (%d bytes)", path, len(content.encode("utf-8")))
