import logging
import os
import pickle
import tempfile

from .errors import IndexLoadFailure, IndexSaveFailure
from .base import BaseFingerprintIndex
from .index import FingerprintIndex

logger = logging.getLogger(__name__)


def load_db(path: str) -> FingerprintIndex:
    """
    Load the fingerprint index stored at ``path``.

    A missing file means nothing has been enrolled yet and gives an empty
    index. A file that exists but cannot be unpickled raises IndexLoadFailure.
    """
    if not os.path.exists(path):
        logger.info(f"No index at {path}, starting with an empty one")
        return FingerprintIndex()
    try:
        with open(path, "rb") as f:
            table = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError,
            IndexError, KeyError, TypeError, ValueError) as e:
        raise IndexLoadFailure(f"Could not read index {path}: {e}") from e
    if not isinstance(table, dict):
        raise IndexLoadFailure(f"Index {path} does not contain a hash table")
    try:
        index = FingerprintIndex(table)
    except (TypeError, ValueError) as e:
        raise IndexLoadFailure(f"Index {path} holds malformed landmarks: {e}") from e
    logger.debug(f"Loaded {index.num_hashes} hashes from {path}")
    return index


def save_db(path: str, index: BaseFingerprintIndex) -> None:
    """Write a snapshot of ``index`` to ``path`` atomically. Raises IndexSaveFailure on any I/O error."""
    table = index.to_table()
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".songprint-", suffix=".tmp")
        with os.fdopen(fd, "wb") as f:
            pickle.dump(table, f, protocol=pickle.HIGHEST_PROTOCOL)
        os.replace(tmp_path, path)
        tmp_path = None
    except (OSError, pickle.PicklingError) as e:
        raise IndexSaveFailure(f"Could not write index {path}: {e}") from e
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)
    logger.debug(f"Saved {len(table)} hashes to {path}")
