"""
Reference data - the compiled-in character template.

Loaded once at startup from YAML. It is pushed to the store when the store
has no character prototype (seeding) or, in development, on every session
load when UPDATE_TEMPLATE is set.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from server.src.core.constants import CHARACTER_PROTOTYPE_TYPE, Collection
from server.src.core.logging_config import get_logger
from server.src.services.data_access_service import DataAccessService

logger = get_logger(__name__)


def load_reference_template(path: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """Load the reference character template, or None if the file is missing."""
    template_path = Path(path)
    if not template_path.exists():
        logger.warning(
            "Reference template not found", extra={"path": str(template_path)}
        )
        return None

    with open(template_path, "r") as f:
        template = yaml.safe_load(f) or {}

    if template.get("type") != CHARACTER_PROTOTYPE_TYPE:
        raise ValueError(
            f"Reference template at {template_path} must have type "
            f"'{CHARACTER_PROTOTYPE_TYPE}'"
        )
    return template


async def seed_reference_template(
    store: DataAccessService, reference_template: Dict[str, Any]
) -> bool:
    """Insert the reference template if the store holds no character prototype."""
    existing = await store.find(
        Collection.PROTOTYPES, {"type": CHARACTER_PROTOTYPE_TYPE}, None
    )
    if existing:
        return False

    # insert_one adds _id to the document it is given
    await store.insert(Collection.PROTOTYPES, dict(reference_template))
    logger.info("Seeded character prototype from reference template")
    return True
