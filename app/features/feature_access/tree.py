"""
Render a flat capability grant into the navigation tree the dashboard uses.
"""
from typing import List, Mapping, Optional

from app.features.feature_access.catalog import CATALOG, SETTINGS_CHILDREN
from app.features.feature_access.schemas import FeatureNode


def render(flags: Mapping[str, Optional[bool]]) -> List[FeatureNode]:
    """
    Build the tree in catalog order.

    Keys missing from ``flags`` (or stored as NULL) render as enabled. The
    settings entry gets its fixed children, each carrying the settings flag.
    """
    tree = []
    for capability in CATALOG:
        enabled = flags.get(capability.key) is not False
        children = []
        if capability.is_parent_of_nested:
            children = [
                FeatureNode(title=child.title, enabled=enabled, path=child.path)
                for child in SETTINGS_CHILDREN
            ]
        tree.append(FeatureNode(
            title=capability.title,
            enabled=enabled,
            path=capability.path,
            children=children,
        ))
    return tree


def catalog_tree() -> List[FeatureNode]:
    """Every capability, enabled."""
    return render({})
