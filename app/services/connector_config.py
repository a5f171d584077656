"""
Reading and writing connector configuration JSON (connectors.cfg_enc).
"""
import json
from typing import Any, Dict

from pydantic import BaseModel, ValidationError

from app.core.exceptions import ConnectorConfigError
from app.models.connector_models import CONFIG_MODELS
from app.models.db_models import Connector


def parse_raw_config(connector: Connector) -> Dict[str, Any]:
    """Return the stored config dict. Raises ConnectorConfigError if it is not a JSON object."""
    try:
        data = json.loads(connector.cfg_enc or "{}")
    except (TypeError, ValueError) as e:
        raise ConnectorConfigError("Failed to parse connector configuration.") from e
    if not isinstance(data, dict):
        raise ConnectorConfigError("Failed to parse connector configuration.")
    return data


def load_connector_config(connector: Connector) -> BaseModel:
    """
    Parse a connector's config into its vendor model (YoLinkConfig, PikoConfig, ...).

    Raises:
        ConnectorConfigError: If the JSON is malformed, the category has no
            config model or required fields are missing
    """
    model = CONFIG_MODELS.get(connector.category)
    if model is None:
        raise ConnectorConfigError(f"Unsupported connector category: {connector.category}")
    try:
        return model.model_validate(parse_raw_config(connector))
    except ValidationError as e:
        raise ConnectorConfigError("Failed to parse connector configuration.") from e


def dump_config(config: BaseModel) -> str:
    return json.dumps(config.model_dump(by_alias=True, exclude_none=True))


def store_connector_config(connector: Connector, config: BaseModel):
    """Write the config back onto the connector row (caller commits)."""
    connector.cfg_enc = dump_config(config)
