"""Configuration loader and validation for import reconciliation settings."""

from pathlib import Path
from typing import Any, Literal, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class CsvInputConfig(BaseModel):
    """Configuration for CSV statement files."""

    encoding: str = "utf-8"
    delimiter: str = ";"
    has_header: bool = True
    skip_rows: int = Field(default=0, ge=0)


class ExcelInputConfig(BaseModel):
    """Configuration for Excel statement files."""

    sheet_index: int = Field(default=0, ge=0)
    has_header: bool = True
    skip_rows: int = Field(default=0, ge=0)


class InputConfig(BaseModel):
    """Configuration for statement file reading."""

    csv: CsvInputConfig = Field(default_factory=CsvInputConfig)
    excel: ExcelInputConfig = Field(default_factory=ExcelInputConfig)


class ColumnMapping(BaseModel):
    """
    Column indexes of a tokenized statement line.

    Either ``amount`` or the ``debit``/``credit`` pair locates the money column(s).
    """

    date: int = Field(default=0, ge=0)
    description: int = Field(default=1, ge=0)
    amount: Optional[int] = Field(default=2, ge=0)
    debit: Optional[int] = Field(default=None, ge=0)
    credit: Optional[int] = Field(default=None, ge=0)
    check_number: Optional[int] = Field(default=None, ge=0)
    card_suffix: Optional[int] = Field(default=None, ge=0)
    date_format: str = "%d/%m/%Y"
    invert_amounts: bool = False

    @model_validator(mode="after")
    def _check_amount_columns(self) -> "ColumnMapping":
        if self.amount is None and self.debit is None and self.credit is None:
            raise ValueError("mapping needs an amount column or debit/credit columns")
        return self


class LocaleSettings(BaseModel):
    """User locale used to read amounts."""

    decimal_separator: Literal[",", "."] = ","
    digit_grouping: Literal[" ", ",", ".", ""] = " "

    @model_validator(mode="after")
    def _check_separators(self) -> "LocaleSettings":
        if self.digit_grouping == self.decimal_separator:
            raise ValueError("digit grouping cannot equal the decimal separator")
        return self


class MatchingSettings(BaseModel):
    """Classification and confirm settings."""

    duplicate_policy: Literal["ledger", "import_hash"] = "ledger"
    duplicate_precedence: Literal["before_exact", "after_exact"] = "before_exact"
    auto_date_tolerance_days: Optional[int] = Field(default=None, ge=0)
    max_workers: int = Field(default=4, ge=1)
    reconcile_created: bool = False


class DatabaseConfig(BaseModel):
    """Ledger database connection."""

    url: str = "sqlite:///budget_recon.db"
    echo: bool = False


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "import_report_{batch}_{date}.xlsx"


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    rows: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Rows"))
    candidates: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Candidates"))
    errors: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Errors"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model for import reconciliation."""

    input: InputConfig = Field(default_factory=InputConfig)
    mapping: ColumnMapping = Field(default_factory=ColumnMapping)
    locale: LocaleSettings = Field(default_factory=LocaleSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "input": {
            "csv": {
                "encoding": "utf-8",
                "delimiter": ";",
                "has_header": True,
                "skip_rows": 0,
            },
            "excel": {
                "sheet_index": 0,
                "has_header": True,
                "skip_rows": 0,
            },
        },
        "mapping": {
            "date": 0,
            "description": 1,
            "amount": 2,
            "debit": None,
            "credit": None,
            "check_number": None,
            "card_suffix": None,
            "date_format": "%d/%m/%Y",
            "invert_amounts": False,
        },
        "locale": {
            "decimal_separator": ",",
            "digit_grouping": " ",
        },
        "matching": {
            "duplicate_policy": "ledger",
            "duplicate_precedence": "before_exact",
            "auto_date_tolerance_days": None,
            "max_workers": 4,
            "reconcile_created": False,
        },
        "database": {
            "url": "sqlite:///budget_recon.db",
            "echo": False,
        },
        "output": {
            "excel": {
                "filename_template": "import_report_{batch}_{date}.xlsx",
            },
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "rows": {"enabled": True, "name": "Rows"},
                "candidates": {"enabled": True, "name": "Candidates"},
                "errors": {"enabled": True, "name": "Errors"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
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

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
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
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# Bank statement import reconciliation configuration
# Generated configuration file - customize as needed
#
# mapping: zero-based column indexes of the statement lines
# locale.digit_grouping: one of " ", ",", "." or "" (no grouping)
# matching.duplicate_policy: "ledger" (identical reconciled transaction)
#   or "import_hash" (transaction previously created/matched by an import)

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
