"""
Bank statement file reader.
Reads CSV and Excel exports into tokenized lines for the normalizer.
"""

from datetime import datetime
from pathlib import Path
from typing import Any
import logging

import pandas as pd

from ..config import ReconConfig
from ..utils.exceptions import StatementReadError

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


class StatementReader:
    """
    Reader for bank statement exports.

    Column meaning is not interpreted here: every line comes back as a list of
    cell values, header and leading junk rows removed.
    """

    def __init__(self, config: ReconConfig):
        """
        Initialize the reader with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config

    def is_excel(self, file_path: Path) -> bool:
        return file_path.suffix.lower() in EXCEL_SUFFIXES

    def first_data_line(self, file_path: Path) -> int:
        """1-based source line number of the first returned row."""
        settings = self.config.input.excel if self.is_excel(file_path) else self.config.input.csv
        return settings.skip_rows + (2 if settings.has_header else 1)

    def read_file(self, file_path: Path) -> list[list[Any]]:
        """
        Read a statement file.

        Args:
            file_path: Path to a CSV or Excel file

        Returns:
            Tokenized lines (cell values, empty cells as "")

        Raises:
            StatementReadError: If the file cannot be read
        """
        logger.info(f"Reading statement file: {file_path}")

        try:
            if self.is_excel(file_path):
                df = self._read_excel(file_path)
            else:
                df = self._read_csv(file_path)
        except Exception as e:
            logger.error(f"Failed to read statement file: {e}")
            raise StatementReadError(f"Failed to read statement file: {e}") from e

        rows = self._frame_to_rows(df)
        logger.info(f"Read {len(rows)} lines from {file_path.name}")
        return rows

    def _read_csv(self, file_path: Path) -> pd.DataFrame:
        csv_config = self.config.input.csv
        df = pd.read_csv(
            file_path,
            sep=csv_config.delimiter,
            encoding=csv_config.encoding,
            header=None,
            dtype=str,
            keep_default_na=False,
            skiprows=csv_config.skip_rows,
            skip_blank_lines=True,
        )
        return df.iloc[1:] if csv_config.has_header else df

    def _read_excel(self, file_path: Path) -> pd.DataFrame:
        excel_config = self.config.input.excel
        df = pd.read_excel(
            file_path,
            sheet_name=excel_config.sheet_index,
            header=None,
            dtype=object,
            skiprows=excel_config.skip_rows,
            engine="openpyxl",
        )
        return df.iloc[1:] if excel_config.has_header else df

    def _frame_to_rows(self, df: pd.DataFrame) -> list[list[Any]]:
        rows: list[list[Any]] = []
        for _, series in df.iterrows():
            rows.append([self._cell_value(value) for value in series.tolist()])
        return rows

    @staticmethod
    def _cell_value(value: Any) -> Any:
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        if isinstance(value, datetime):
            return value
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return ""
        return value
