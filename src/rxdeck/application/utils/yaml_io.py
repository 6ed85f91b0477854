from pathlib import Path
from typing import Any

import yaml  # type: ignore
import yaml.constructor


class UniqueKeyLoader(yaml.SafeLoader):
    """Safe YAML loader that forbids duplicate keys."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise yaml.constructor.ConstructorError(
                    None, None, f"found duplicate key '{key}'", key_node.start_mark
                )
            seen.add(key)
        return super().construct_mapping(node, deep)


def load_yaml(text: str) -> Any:
    # Fix tabs (common user error)
    if "\t" in text:
        text = text.replace("\t", "  ")
    return yaml.load(text, Loader=UniqueKeyLoader)


def load_yaml_file(path: Path) -> Any:
    return load_yaml(path.read_text(encoding="utf-8"))
