"""Configuration loader and validation for search and reconciliation settings."""

from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .models.rules import ReconciliationRule, get_default_rules
from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ColumnMappings(BaseModel):
    """Column names of the normalized rows file."""

    record_id: str = "ID"
    date: str = "Data"
    payment_type: str = "Tipo"
    identifier: str = "CPF"
    amount: str = "Valor"
    original_text: str = "Historico"


class InputConfig(BaseModel):
    """Configuration for reading normalized rows."""

    encoding: str = "utf-8"
    delimiter: str = ";"
    date_format: str = "%d/%m/%Y"
    sheet_name: Optional[str] = None
    column_mappings: ColumnMappings = Field(default_factory=ColumnMappings)


class SearchTierSettings(BaseModel):
    """One pass of the tiered smart search."""

    tolerance: Decimal = Field(default=Decimal("0.02"), ge=0)
    min_confidence: Decimal = Field(default=Decimal("0.3"), ge=0, le=1)
    max_results: int = Field(default=10, ge=1)
    include_partial_matches: bool = True
    search_in_text: bool = True
    search_in_identifier: bool = False


class SearchConfig(BaseModel):
    """Configuration for exact / close / fuzzy value search."""

    exact: SearchTierSettings = Field(
        default_factory=lambda: SearchTierSettings(
            tolerance=Decimal("0"), min_confidence=Decimal("0.7"), max_results=5
        )
    )
    close: SearchTierSettings = Field(
        default_factory=lambda: SearchTierSettings(
            tolerance=Decimal("0.05"), min_confidence=Decimal("0.5"), max_results=10
        )
    )
    fuzzy: SearchTierSettings = Field(
        default_factory=lambda: SearchTierSettings(
            tolerance=Decimal("0.10"),
            min_confidence=Decimal("0.3"),
            max_results=15,
            search_in_identifier=True,
        )
    )
    suggestion_bands: list[Decimal] = Field(
        default_factory=lambda: [
            Decimal("0.01"),
            Decimal("0.05"),
            Decimal("0.10"),
            Decimal("0.20"),
        ]
    )
    max_suggestions: int = Field(default=5, ge=0)
    suggestions_per_band: int = Field(default=3, ge=1)


class ReconciliationSettings(BaseModel):
    """Grouping, scoring and classification settings for cross-source runs."""

    # Width of the value range bucket: floor(amount / width)
    value_bucket_width: Decimal = Field(default=Decimal("10"), gt=0)

    # Also compare against neighbouring value buckets and nearby days
    probe_neighbor_buckets: bool = True

    date_tolerance_days: int = Field(default=1, ge=0)
    value_tolerance: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)
    min_confidence: Decimal = Field(default=Decimal("0.3"), ge=0, le=1)
    exact_threshold: Decimal = Field(default=Decimal("0.95"), ge=0, le=1)
    approximate_threshold: Decimal = Field(default=Decimal("0.8"), ge=0, le=1)
    partial_identifier_min_digits: int = Field(default=6, ge=1)
    text_similarity_threshold: Decimal = Field(default=Decimal("0.7"), ge=0, le=1)
    max_workers: int = Field(default=1, ge=1)


class SheetNames(BaseModel):
    """Sheet names of exported workbooks."""

    summary: str = "Summary"
    matches: str = "Matches"
    discrepancies: str = "Discrepancies"
    unmatched: str = "Unmatched"
    conferred: str = "Conferred"
    events: str = "Audit Trail"


class OutputConfig(BaseModel):
    """Configuration for exports."""

    filename_template: str = "reconciliation_report_{date}_{time}.xlsx"
    sheets: SheetNames = Field(default_factory=SheetNames)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ReconConfig(BaseModel):
    """Main configuration model."""

    input: InputConfig = Field(default_factory=InputConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    rules: list[ReconciliationRule] = Field(default_factory=get_default_rules)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a plain (YAML-friendly) dictionary."""
    return ReconConfig().model_dump(mode="json", exclude={"config_file_path"})


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Lists (such as ``rules``) are replaced, not concatenated.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Write the default configuration to a YAML file.

    Args:
        output_path: Path to write the configuration file
    """
    yaml_content = """# Bank / cash register reconciliation configuration
# Tolerances are fractions (0.05 = 5%); amounts use two decimals.

"""
    yaml_content += yaml.dump(
        get_default_config(), default_flow_style=False, sort_keys=False, allow_unicode=True
    )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
