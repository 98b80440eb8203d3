#!/usr/bin/env python3
"""
Prior persistence: save a HumanPrior to CSV and load it back for reuse in a
later session.

File layout (header row, then one row per prior location):

    X,Y,Means,Confidence
    120.0,80.0,3.0,7.0
    400.0,310.0,8.0,
    ...

The confidence is a single value for the whole prior and lives in the
first data row. Later rows leave it blank; files written by older tooling
that zero-filled the column (or repeated the value) are also accepted.
Columns are read by position, not by name.
"""

from __future__ import annotations

import logging
import os
from typing import Union

import numpy as np
import pandas as pd

from hilgp.data import HumanPrior
from hilgp.exceptions import FormatError, InvalidInputError

logger = logging.getLogger(__name__)

PRIOR_COLUMNS = ('X', 'Y', 'Means', 'Confidence')

PathLike = Union[str, os.PathLike]


def _is_number(text) -> bool:
    try:
        float(text)
    except (TypeError, ValueError):
        return False
    return True


class PriorStore:
    """Reads and writes HumanPrior CSV files."""

    @staticmethod
    def save(prior: HumanPrior, destination: PathLike) -> str:
        """Write ``prior`` to ``destination``; returns the path written."""
        if not isinstance(prior, HumanPrior):
            raise InvalidInputError(f"Expected HumanPrior, got {type(prior).__name__}")
        if len(prior) == 0:
            raise InvalidInputError("Cannot save an empty prior: the file format needs at least one row")

        path = os.fspath(destination)
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        confidence = [prior.confidence] + [None] * (len(prior) - 1)
        df = pd.DataFrame({
            PRIOR_COLUMNS[0]: prior.locations[:, 0],
            PRIOR_COLUMNS[1]: prior.locations[:, 1],
            PRIOR_COLUMNS[2]: prior.levels,
            PRIOR_COLUMNS[3]: pd.Series(confidence, dtype=object),
        })
        df.to_csv(path, index=False)
        logger.info(f"[PriorStore] Saved prior with {len(prior)} points (confidence {prior.confidence:g}) to {path}")
        return path

    @staticmethod
    def load(source: PathLike) -> HumanPrior:
        """
        Read a prior file.

        Raises:
            FileNotFoundError: if ``source`` does not exist
            FormatError: wrong column count, no data rows, no header,
                non-numeric cells, or a conflicting confidence on a later row
            InvalidInputError: confidence is not > 0
        """
        path = os.fspath(source)
        if not os.path.exists(path):
            raise FileNotFoundError(f"Prior file not found: {path}")

        try:
            df = pd.read_csv(path, header=0, skipinitialspace=True)
        except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise FormatError(f"Could not parse prior file {path}: {e}") from e

        if df.shape[1] != len(PRIOR_COLUMNS):
            raise FormatError(
                f"Prior file {path} has {df.shape[1]} columns, expected {len(PRIOR_COLUMNS)} "
                f"({','.join(PRIOR_COLUMNS)})"
            )
        if any(_is_number(name) for name in df.columns):
            raise FormatError(f"Prior file {path} has no header row")
        if df.shape[0] < 1:
            raise FormatError(f"Prior file {path} has no data rows")

        body = df.iloc[:, :3].apply(pd.to_numeric, errors='coerce')
        if body.isna().any().any():
            bad_row = int(np.argmax(body.isna().any(axis=1).to_numpy())) + 1
            raise FormatError(f"Prior file {path}: missing or non-numeric X/Y/Means on data row {bad_row}")

        raw_conf = df.iloc[:, 3]
        conf = pd.to_numeric(raw_conf, errors='coerce')
        garbage = conf.isna() & raw_conf.notna()
        if garbage.any():
            raise FormatError(f"Prior file {path}: non-numeric confidence value {raw_conf[garbage].iloc[0]!r}")
        if pd.isna(conf.iloc[0]):
            raise FormatError(f"Prior file {path}: confidence missing from the first data row")

        confidence = float(conf.iloc[0])
        rest = conf.iloc[1:]
        conflicting = rest.notna() & (rest != confidence) & (rest != 0.0)
        if conflicting.any():
            raise FormatError(
                f"Prior file {path}: confidence {float(rest[conflicting].iloc[0])} on a later row "
                f"conflicts with first-row confidence {confidence}"
            )

        values = body.to_numpy(dtype=float)
        prior = HumanPrior(locations=values[:, 0:2], levels=values[:, 2], confidence=confidence)
        logger.info(f"[PriorStore] Loaded prior with {len(prior)} points (confidence {confidence:g}) from {path}")
        return prior
