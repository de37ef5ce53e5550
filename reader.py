# reader.py
import logging
import os
import zipfile

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from compute import DecodeError
from settings import DefaultSettings

logger = logging.getLogger(__name__)


def pick_sheet(sheet_names, sheet_index=None):
    if not sheet_names:
        raise DecodeError("Workbook contains no sheets")
    if sheet_index is None:
        return sheet_names[1] if len(sheet_names) > 1 else sheet_names[0]
    if not 0 <= sheet_index < len(sheet_names):
        raise DecodeError(f"Sheet {sheet_index} not found; workbook has {len(sheet_names)} sheet(s)")
    return sheet_names[sheet_index]


def frame_to_rows(df):
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict("records")


def decode_tabular_file(source, sheet_index=None, text_columns=None):
    """Read an uploaded CSV or Excel file into a list of row dicts.

    ``source`` is a path or a file-like object with a ``name`` (a Streamlit upload).
    CSV columns named in ``text_columns`` (the phone number columns by default)
    are kept as text so leading zeros and ``+`` prefixes survive.
    """
    if text_columns is None:
        columns = DefaultSettings().call_columns
        text_columns = (columns["to_number"], columns["from_number"])
    name = os.path.basename(str(getattr(source, "name", source)))
    try:
        if name.lower().endswith(".csv"):
            df = pd.read_csv(source, dtype={c: str for c in text_columns})
            sheet = None
        else:
            with pd.ExcelFile(source, engine="openpyxl") as xls:
                sheet = pick_sheet(xls.sheet_names, sheet_index)
                df = xls.parse(sheet)
    except DecodeError:
        raise
    except (ValueError, OSError, zipfile.BadZipFile, InvalidFileException) as e:
        raise DecodeError(f"Could not read {name}: {e}") from e

    logger.info("Loaded %d rows from %s%s", len(df), name, f" (sheet {sheet!r})" if sheet else "")
    return frame_to_rows(df)
